"""PeerTrack coordinates peer discovery and WebRTC signaling for swarms."""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('peertrack')
