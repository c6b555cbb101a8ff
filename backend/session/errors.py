"""
Gateway error taxonomy.

Each error carries the HTTP status it maps to; the server layer turns any
GatewayError into `{success: false, error: <message>}` with that status.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for failures surfaced to HTTP callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GatewayError):
    """Missing or malformed request input."""
    status_code = 400


class NotReadyError(GatewayError):
    """The session is not connected (or a restart is in flight)."""
    status_code = 503


class RecipientNotFoundError(GatewayError):
    """The destination is not an account on the chat network."""
    status_code = 400


class ProviderError(GatewayError):
    """The session handle failed while carrying out a request."""
    status_code = 500
