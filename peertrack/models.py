"""Data types for presence records, peer scores, and signaling messages.

Records are stored and transmitted as JSON using camelCase field names.
"""
from __future__ import annotations

import dataclasses
import enum
import json
from typing import Any


class SignalType(enum.Enum):
    """Kinds of WebRTC handshake messages relayed between peers."""

    offer = 'offer'
    """Session description offer."""
    answer = 'answer'
    """Session description answer."""
    ice_candidate = 'ice-candidate'
    """Trickled ICE candidate."""


class ModelDecodeError(Exception):
    """Exception raised when a stored or received model cannot be decoded."""

    pass


@dataclasses.dataclass
class PeerRecord:
    """Presence record of a peer for a single manifest.

    Attributes:
        peer_id: Peer identifier, unique within a manifest.
        manifest_id: Identifier of the content set the peer participates in.
        chunk_bitfield: Hex encoded bitfield of held chunks.
        up_cap: Upload capacity in bytes per second.
        region: Optional region label.
        rtt_hint: Optional round trip time hint in milliseconds.
        version: Optional informational client version.
        last_seen: Milliseconds since the epoch of the latest announce.
        is_complete: If the peer holds the full manifest.
    """

    peer_id: str
    manifest_id: str
    chunk_bitfield: str
    up_cap: int = 0
    region: str | None = None
    rtt_hint: int | None = None
    version: str | None = None
    last_seen: int = 0
    is_complete: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire representation."""
        return {
            'peerId': self.peer_id,
            'manifestId': self.manifest_id,
            'chunkBitfield': self.chunk_bitfield,
            'upCap': self.up_cap,
            'region': self.region,
            'rttHint': self.rtt_hint,
            'version': self.version,
            'lastSeen': self.last_seen,
            'isComplete': self.is_complete,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeerRecord:
        """Parse the camelCase wire representation.

        Raises:
            ModelDecodeError: if required keys are missing.
        """
        try:
            return cls(
                peer_id=data['peerId'],
                manifest_id=data['manifestId'],
                chunk_bitfield=data['chunkBitfield'],
                up_cap=data.get('upCap') or 0,
                region=data.get('region'),
                rtt_hint=data.get('rttHint'),
                version=data.get('version'),
                last_seen=data.get('lastSeen', 0),
                is_complete=bool(data.get('isComplete', False)),
            )
        except (KeyError, TypeError) as e:
            raise ModelDecodeError(
                f'Failed to convert data to {cls.__name__}: {e!r}',
            ) from e


@dataclasses.dataclass
class PeerScore:
    """Score of a candidate peer for a single selection request.

    Attributes:
        peer_id: Candidate peer.
        score: Sum of all factors.
        factors: Points contributed by each named factor.
        has_needed: If the candidate holds at least one needed chunk.
    """

    peer_id: str
    score: float
    factors: dict[str, float]
    has_needed: bool


@dataclasses.dataclass
class PeerDescriptor:
    """Public view of a selected peer returned to requesters."""

    peer_id: str
    chunk_bitfield: str
    region: str | None
    score: float
    has_needed: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire representation."""
        return {
            'peerId': self.peer_id,
            'chunkBitfield': self.chunk_bitfield,
            'region': self.region,
            'score': self.score,
            'hasNeeded': self.has_needed,
        }


@dataclasses.dataclass
class SignalMessage:
    """Handshake message waiting in a recipient's mailbox.

    Attributes:
        type: One of the [`SignalType`][peertrack.models.SignalType] values.
        sender: Peer that sent the message.
        recipient: Peer the message is addressed to.
        payload: Opaque handshake payload (SDP or ICE candidate).
        timestamp: Milliseconds since the epoch when the message was relayed.
    """

    type: str
    sender: str
    recipient: str
    payload: Any
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire representation."""
        return {
            'type': self.type,
            'from': self.sender,
            'to': self.recipient,
            'data': self.payload,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignalMessage:
        """Parse the wire representation.

        Raises:
            ModelDecodeError: if required keys are missing.
        """
        try:
            return cls(
                type=data['type'],
                sender=data['from'],
                recipient=data['to'],
                payload=data.get('data'),
                timestamp=data['timestamp'],
            )
        except (KeyError, TypeError) as e:
            raise ModelDecodeError(
                f'Failed to convert data to {cls.__name__}: {e!r}',
            ) from e


def encode_model(model: PeerRecord | SignalMessage) -> str:
    """Encode a record or message as a JSON string."""
    return json.dumps(model.to_dict())


def decode_peer_record(data: str) -> PeerRecord:
    """Decode a JSON string into a peer record.

    Raises:
        ModelDecodeError: if the string is not a valid encoded record.
    """
    return PeerRecord.from_dict(_load_object(data))


def decode_signal_message(data: str) -> SignalMessage:
    """Decode a JSON string into a signal message.

    Raises:
        ModelDecodeError: if the string is not a valid encoded message.
    """
    return SignalMessage.from_dict(_load_object(data))


def _load_object(data: str) -> dict[str, Any]:
    try:
        obj = json.loads(data)
    except json.JSONDecodeError as e:
        raise ModelDecodeError('Failed to load string as JSON.') from e
    if not isinstance(obj, dict):
        raise ModelDecodeError(
            f'Expected a JSON object but got {type(obj).__name__}.',
        )
    return obj
