"""Exceptions raised by the connection layer."""

from __future__ import annotations


class InvalidSessionState(RuntimeError):
    """Raised when a session operation is attempted from the wrong state."""


class ConnectionLostError(RuntimeError):
    """Raised when the venue connection ends without the client closing it."""
