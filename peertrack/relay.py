"""Signaling mailboxes for WebRTC handshakes.

Two peers that cannot yet talk directly exchange session descriptions and
ICE candidates through the relay. Messages are appended to the
recipient's mailbox (`signals:{recipient}`) and handed out at most once by
the next poll. A message older than the relay TTL is dropped on drain even
if later messages kept its mailbox alive; the mailbox expiry only bounds
how long abandoned mailboxes occupy the store.

Draining pops the entire mailbox in one atomic store operation so two
concurrent polls for the same recipient can never both receive a message.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from peertrack.constants import SIGNAL_TTL_DEFAULT
from peertrack.exceptions import InvalidRequestError
from peertrack.models import decode_signal_message
from peertrack.models import encode_model
from peertrack.models import ModelDecodeError
from peertrack.models import SignalMessage
from peertrack.models import SignalType
from peertrack.store.protocols import PeerStateStore

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def mailbox_key(recipient_id: str) -> str:
    """Store key of a recipient's mailbox."""
    return f'signals:{recipient_id}'


class SignalRelay:
    """Relay of signaling messages between peers.

    Args:
        store: Shared peer state store.
        ttl: Seconds an undelivered message is kept.
        clock: Zero argument callable returning the current time in
            milliseconds since the epoch. Compared against message
            timestamps on drain.
    """

    def __init__(
        self,
        store: PeerStateStore,
        *,
        ttl: int = SIGNAL_TTL_DEFAULT,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self._clock = clock

    async def enqueue(self, message: SignalMessage) -> None:
        """Queue a message for delivery to its recipient.

        Messages from other senders pending for the same recipient are
        never overwritten.

        Raises:
            InvalidRequestError: if the message type is unknown or the
                sender or recipient is missing. Nothing is written.
        """
        try:
            SignalType(message.type)
        except ValueError:
            raise InvalidRequestError(
                f'Invalid signal type: {message.type!r}.',
            ) from None
        if not message.recipient or not message.sender:
            raise InvalidRequestError('Signal sender and recipient required.')

        await self.store.queue_push(
            mailbox_key(message.recipient),
            encode_model(message),
            self.ttl,
        )
        logger.debug(
            f'Queued {message.type} from {message.sender} to '
            f'{message.recipient}',
        )

    async def drain_for(self, recipient_id: str) -> list[SignalMessage]:
        """Remove and return every pending message for a recipient.

        Messages queued more than `ttl` seconds ago are discarded.

        Returns:
            Unexpired messages in the order they were queued. Empty if the
            mailbox is empty or expired.
        """
        raw = await self.store.queue_pop_all(mailbox_key(recipient_id))
        cutoff = self._clock() - self.ttl * 1000
        messages = []
        for data in raw:
            try:
                message = decode_signal_message(data)
            except ModelDecodeError as e:
                logger.error(
                    f'Dropping undecodable signal for {recipient_id}: {e}',
                )
                continue
            if message.timestamp <= cutoff:
                logger.debug(
                    f'Dropping expired {message.type} from '
                    f'{message.sender} to {recipient_id}',
                )
                continue
            messages.append(message)
        return messages
