from __future__ import annotations

import time

import jwt
import pytest

from peertrack.auth import Authenticator
from peertrack.auth import get_authenticator
from peertrack.auth import get_token_from_headers
from peertrack.auth import JWTAuthenticator
from peertrack.auth import NullAuthenticator
from peertrack.auth import TokenAuthenticator
from peertrack.config import AuthConfig
from peertrack.exceptions import ForbiddenError
from peertrack.exceptions import UnauthorizedError

SECRET = 's' * 64


def _bearer(token: str) -> dict[str, str]:
    return {'Authorization': f'Bearer {token}'}


def test_null_authenticator() -> None:
    authenticator = NullAuthenticator()
    assert isinstance(authenticator, Authenticator)
    assert authenticator.authenticate_user({}) == 'anonymous'
    assert authenticator.authenticate_user({'X-Client-Id': 'a'}) == 'a'
    assert authenticator.authenticate_user({'X-Client-Id': ''}) == 'anonymous'


def test_token_authenticator() -> None:
    authenticator = TokenAuthenticator({'abc': 'alice', 'xyz': 'bob'})
    assert isinstance(authenticator, Authenticator)

    headers = {'Authorization': 'Bearer xyz'}
    assert authenticator.authenticate_user(headers) == 'bob'

    with pytest.raises(ForbiddenError):
        authenticator.authenticate_user({'Authorization': 'Bearer nope'})
    with pytest.raises(UnauthorizedError):
        authenticator.authenticate_user({})


def test_token_authenticator_requires_tokens() -> None:
    with pytest.raises(ValueError, match='token'):
        TokenAuthenticator({})


def test_get_authenticator() -> None:
    assert isinstance(get_authenticator(AuthConfig()), NullAuthenticator)

    config = AuthConfig(method='token', kwargs={'tokens': {'abc': 'alice'}})
    authenticator = get_authenticator(config)
    assert isinstance(authenticator, TokenAuthenticator)
    assert authenticator.authenticate_user(
        {'Authorization': 'Bearer abc'},
    ) == 'alice'


def test_get_authenticator_jwt() -> None:
    config = AuthConfig(method='jwt', kwargs={'secret': SECRET})
    authenticator = get_authenticator(config)
    assert isinstance(authenticator, JWTAuthenticator)
    token = jwt.encode({'userId': 'alice'}, SECRET, algorithm='HS256')
    assert authenticator.authenticate_user(_bearer(token)) == 'alice'


def test_get_authenticator_unknown_method() -> None:
    config = AuthConfig()
    # Bypass validation to get an unknown method
    config.method = 'unknown'  # type: ignore[assignment]
    with pytest.raises(ValueError, match='unknown'):
        get_authenticator(config)


def test_get_token_from_headers() -> None:
    headers = {'Authorization': 'Bearer <TOKEN>'}
    assert get_token_from_headers(headers) == '<TOKEN>'


def test_get_token_from_headers_missing() -> None:
    with pytest.raises(UnauthorizedError, match='missing'):
        get_token_from_headers({})


@pytest.mark.parametrize('value', ('Bearer', 'Basic abc', 'Bearer a b'))
def test_get_token_from_headers_malformed(value: str) -> None:
    with pytest.raises(UnauthorizedError, match='malformed'):
        get_token_from_headers({'Authorization': value})


def test_jwt_authenticator() -> None:
    authenticator = JWTAuthenticator(SECRET)
    assert isinstance(authenticator, Authenticator)

    token = jwt.encode({'userId': 'alice'}, SECRET, algorithm='HS256')
    assert authenticator.authenticate_user(_bearer(token)) == 'alice'


def test_jwt_authenticator_identity_claims() -> None:
    authenticator = JWTAuthenticator(SECRET)

    token = jwt.encode({'userId': 7}, SECRET, algorithm='HS256')
    assert authenticator.authenticate_user(_bearer(token)) == '7'

    token = jwt.encode({'username': 'bob'}, SECRET, algorithm='HS256')
    assert authenticator.authenticate_user(_bearer(token)) == 'bob'

    token = jwt.encode({'role': 'admin'}, SECRET, algorithm='HS256')
    with pytest.raises(ForbiddenError, match='identify'):
        authenticator.authenticate_user(_bearer(token))


def test_jwt_authenticator_expired_token() -> None:
    authenticator = JWTAuthenticator(SECRET)
    claims = {'userId': 'alice', 'exp': int(time.time()) - 60}
    token = jwt.encode(claims, SECRET, algorithm='HS256')
    with pytest.raises(ForbiddenError, match='expired'):
        authenticator.authenticate_user(_bearer(token))


@pytest.mark.parametrize(
    'token',
    (
        jwt.encode({'userId': 'alice'}, 't' * 64, algorithm='HS256'),
        jwt.encode({'userId': 'alice'}, SECRET, algorithm='HS512'),
        'not-a-jwt',
    ),
)
def test_jwt_authenticator_invalid_token(token: str) -> None:
    authenticator = JWTAuthenticator(SECRET)
    with pytest.raises(ForbiddenError, match='Invalid'):
        authenticator.authenticate_user(_bearer(token))


def test_jwt_authenticator_missing_header() -> None:
    authenticator = JWTAuthenticator(SECRET)
    with pytest.raises(UnauthorizedError):
        authenticator.authenticate_user({})


def test_jwt_authenticator_short_secret() -> None:
    with pytest.raises(ValueError, match='32 characters'):
        JWTAuthenticator('too-short')
