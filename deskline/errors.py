"""
Error taxonomy for the conversation core.

Controllers catch all of these at their boundary and turn them into state
(a failed message, the recent-errors log, the session error flag). None of
them is meant to reach the UI layer.
"""

from __future__ import annotations


class DesklineError(Exception):
    """Base class for everything raised by deskline."""


class GatewayConnectionError(DesklineError, ConnectionError):
    """Remote collaborator unreachable (raised at session creation)."""


class RequestFailed(DesklineError):
    """A request was rejected by the server or failed on the network."""

    def __init__(self, message: str, status_code: int | None = None, retry_after_ms: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms


class MalformedResponse(RequestFailed):
    """Server answered but the payload could not be parsed."""


class Cancelled(DesklineError):
    """Request was superseded by a newer one for the same channel."""


class PersistenceError(DesklineError):
    """Session storage read/write failure."""
