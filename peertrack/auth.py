"""Authenticate users from request headers."""
from __future__ import annotations

import hmac
from typing import Any
from typing import Mapping
from typing import Protocol
from typing import Sequence
from typing import runtime_checkable

import jwt

from peertrack.config import AuthConfig
from peertrack.constants import JWT_SECRET_MIN_LENGTH
from peertrack.exceptions import ForbiddenError
from peertrack.exceptions import UnauthorizedError

ANONYMOUS_IDENTITY = 'anonymous'
CLIENT_ID_HEADER = 'X-Client-Id'


@runtime_checkable
class Authenticator(Protocol):
    """Authenticate users from request headers."""

    def authenticate_user(self, headers: Mapping[str, str]) -> str:
        """Authenticate user from request headers.

        Args:
            headers: Request headers.

        Returns:
            Identity of the authenticated user. Used as the sender of
            signaling messages and in TURN usernames.

        Raises:
            ForbiddenError: if the presented token is not recognized.
            UnauthorizedError: if the authorization header is missing or
                malformed.
        """
        ...


class NullAuthenticator:
    """Authenticator that implements no authentication.

    The identity is read from the optional `X-Client-Id` header so that
    peers can still be told apart during development.
    """

    def authenticate_user(self, headers: Mapping[str, str]) -> str:
        """Return the claimed client ID or the anonymous identity."""
        return headers.get(CLIENT_ID_HEADER) or ANONYMOUS_IDENTITY


class TokenAuthenticator:
    """Authenticate bearer tokens against a static token table.

    Args:
        tokens: Mapping of bearer token to identity.
    """

    def __init__(self, tokens: Mapping[str, str]) -> None:
        if len(tokens) == 0:
            raise ValueError('At least one token must be configured.')
        self._tokens = dict(tokens)

    def authenticate_user(self, headers: Mapping[str, str]) -> str:
        """Authenticate a bearer token from the request headers.

        Raises:
            UnauthorizedError: if the authorization header is missing or
                malformed.
            ForbiddenError: if the token is unknown.
        """
        token = get_token_from_headers(headers)
        for known, identity in self._tokens.items():
            if hmac.compare_digest(known.encode(), token.encode()):
                return identity
        raise ForbiddenError('Token is not recognized.')


class JWTAuthenticator:
    """Authenticate JSON Web Tokens signed with a shared secret.

    The identity is the `userId` claim of the token, falling back to the
    `username` claim.

    Args:
        secret: Shared HMAC secret. Must be at least 32 characters.
        algorithms: Accepted signing algorithms.
    """

    def __init__(
        self,
        secret: str,
        algorithms: Sequence[str] = ('HS256',),
    ) -> None:
        if len(secret) < JWT_SECRET_MIN_LENGTH:
            raise ValueError(
                'JWT secret must be at least '
                f'{JWT_SECRET_MIN_LENGTH} characters long.',
            )
        self._secret = secret
        self.algorithms = list(algorithms)

    def authenticate_user(self, headers: Mapping[str, str]) -> str:
        """Authenticate a bearer JWT from the request headers.

        Raises:
            UnauthorizedError: if the authorization header is missing or
                malformed.
            ForbiddenError: if the token is expired, invalid, or carries no
                user identity.
        """
        token = get_token_from_headers(headers)
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self.algorithms,
            )
        except jwt.ExpiredSignatureError as e:
            raise ForbiddenError('Token expired.') from e
        except jwt.InvalidTokenError as e:
            raise ForbiddenError('Invalid token.') from e

        identity = claims.get('userId')
        if identity is None:
            identity = claims.get('username')
        if identity is None or identity == '':
            raise ForbiddenError('Token does not identify a user.')
        return str(identity)


def get_authenticator(config: AuthConfig) -> Authenticator:
    """Create an authenticator from a configuration.

    Raises:
        ValueError: if the authentication method in the config is unknown.
    """
    if config.method is None:
        return NullAuthenticator()
    elif config.method == 'token':
        tokens: Any = config.kwargs.get('tokens', {})
        return TokenAuthenticator(tokens)
    elif config.method == 'jwt':
        return JWTAuthenticator(**config.kwargs)
    else:
        raise ValueError(f'Unknown authentication method "{config.method}."')


def get_token_from_headers(headers: Mapping[str, str]) -> str:
    """Extract a token from request headers.

    The header is expected to have the format `Authorization: Bearer <TOKEN>`.

    Raises:
        UnauthorizedError: if the authorization header is missing.
        UnauthorizedError: if the authorization header is malformed.
    """
    if 'Authorization' not in headers:
        raise UnauthorizedError(
            'Request headers are missing authorization header.',
        )

    auth_header_parts = headers['Authorization'].split(' ')

    if len(auth_header_parts) != 2 or auth_header_parts[0] != 'Bearer':
        raise UnauthorizedError(
            'Bearer token in authorization header is malformed.',
        )

    return auth_header_parts[1]
