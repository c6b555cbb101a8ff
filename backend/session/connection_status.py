"""
Connection status of the WhatsApp session.

Rules:
- Exactly one value is active at any time.
- Transitions are defined exclusively in the supervisor reducer.
- No behavior beyond small read-only helpers.
"""
from __future__ import annotations

from enum import Enum


class ConnectionStatus(str, Enum):
    """
    Connection lifecycle of the single session handle.

    Values are the wire labels reported by GET /status.
    """
    INITIALIZING = "initializing"  # Handle being constructed / started
    QR_READY = "qr_ready"          # Pairing challenge waiting for a scan
    CONNECTING = "connecting"      # Credentials accepted, syncing
    CONNECTED = "connected"        # Ready to send
    DISCONNECTED = "disconnected"  # Signed out, dropped or rejected
    ERROR = "error"                # Construction / start raised

    @property
    def is_retryable(self) -> bool:
        """True for the states a supervisor-initiated retry may leave."""
        return self in (ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR)
