"""Service defaults."""
from __future__ import annotations

PEER_TTL_DEFAULT = 300
"""Seconds a presence record stays valid after an announce."""

MAX_PEERS_DEFAULT = 6
"""Maximum number of peers returned by a single selection."""

SIGNAL_TTL_DEFAULT = 30
"""Seconds an undelivered signaling message is kept."""

SWEEP_INTERVAL_DEFAULT = 60
"""Seconds between membership sweeps."""

SWEEP_MAX_RETRIES_DEFAULT = 3
"""Retries of a failed sweep cycle before waiting for the next interval."""

TURN_TTL_DEFAULT = 3600
"""Lifetime in seconds of minted TURN credentials."""

MISSING_RTT_MS = 999
"""RTT assumed for peers that did not report an RTT hint."""

MAX_CONTENT_LENGTH_DEFAULT = 1_000_000
"""Maximum request body size in bytes (bitfields can be large)."""

JWT_SECRET_MIN_LENGTH = 32
"""Minimum length of the shared secret used to verify JWT bearer tokens."""
