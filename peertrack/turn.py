"""Time-limited TURN credentials.

Credentials follow the TURN REST API scheme understood by coturn's
`use-auth-secret` mode: the username is `{expiry}:{identity}` where
`expiry` is a UNIX timestamp, and the password is the base64 encoded
HMAC-SHA1 of the username keyed with the shared secret. The TURN server
recomputes the password and rejects expired usernames, so no state is kept.
"""
from __future__ import annotations

import base64
import dataclasses
import hashlib
import hmac
import time
from typing import Any
from typing import Callable
from typing import Sequence

from peertrack.constants import TURN_TTL_DEFAULT
from peertrack.exceptions import ServiceUnavailableError


@dataclasses.dataclass(frozen=True)
class TurnCredentials:
    """Credentials handed to a WebRTC client.

    Attributes:
        username: TURN username embedding the expiry.
        password: TURN password.
        ttl: Seconds the credentials are valid for.
        uris: STUN URIs followed by TURN URIs.
    """

    username: str
    password: str
    ttl: int
    uris: list[str]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        return dataclasses.asdict(self)


class TurnCredentialIssuer:
    """Mint TURN credentials from a shared secret.

    Args:
        secret: Secret shared with the TURN server. If `None` or empty,
            [`issue()`][peertrack.turn.TurnCredentialIssuer.issue] raises.
        turn_urls: TURN server URIs.
        stun_urls: STUN server URIs.
        ttl: Default credential lifetime in seconds.
        clock: Zero argument callable returning the current UNIX time.
    """

    def __init__(
        self,
        secret: str | None,
        turn_urls: Sequence[str] = (),
        stun_urls: Sequence[str] = (),
        *,
        ttl: int = TURN_TTL_DEFAULT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self.turn_urls = list(turn_urls)
        self.stun_urls = list(stun_urls)
        self.ttl = ttl
        self._clock = clock

    @property
    def configured(self) -> bool:
        """If a shared secret is available."""
        return bool(self._secret)

    def issue(self, identity: str, ttl: int | None = None) -> TurnCredentials:
        """Issue credentials for an authenticated identity.

        Args:
            identity: Authenticated identity embedded in the username.
            ttl: Lifetime in seconds. Defaults to the issuer TTL.

        Raises:
            ServiceUnavailableError: if no shared secret is configured.
        """
        if not self._secret:
            raise ServiceUnavailableError('TURN secret is not configured.')
        ttl = self.ttl if ttl is None else ttl

        expiry = int(self._clock()) + ttl
        username = f'{expiry}:{identity}'
        digest = hmac.new(
            self._secret.encode(),
            username.encode(),
            hashlib.sha1,
        ).digest()
        return TurnCredentials(
            username=username,
            password=base64.b64encode(digest).decode(),
            ttl=ttl,
            uris=[*self.stun_urls, *self.turn_urls],
        )
