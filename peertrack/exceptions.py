"""Exception types raised by the registry, relay, and service layers."""
from __future__ import annotations


class PeerTrackError(Exception):
    """Base exception type for all PeerTrack errors."""

    pass


class InvalidRequestError(PeerTrackError):
    """Request is missing required fields or contains malformed values."""

    pass


class NotFoundError(PeerTrackError):
    """Referenced peer does not have a live presence record."""

    pass


class ServiceUnavailableError(PeerTrackError):
    """Peer state store or a required resource is unavailable."""

    pass


class UnauthorizedError(PeerTrackError):
    """Client is missing authentication tokens."""

    pass


class ForbiddenError(PeerTrackError):
    """Client presented a token that is not recognized."""

    pass


class InternalError(PeerTrackError):
    """Server encountered an unexpected condition."""

    pass
