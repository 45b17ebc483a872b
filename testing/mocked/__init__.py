"""Mocked third-party clients."""
from __future__ import annotations
