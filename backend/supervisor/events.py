"""
Unified event definitions for the lifecycle reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Events emitted by a session handle carry the generation the handle was
built for, so the reducer can discard anything from a superseded handle.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (status, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Supervisor-originated
    # ------------------------------------------------------------------
    INIT_STARTED = "INIT_STARTED"
    INIT_FAILED = "INIT_FAILED"
    RETRY_DUE = "RETRY_DUE"
    RESTART_REQUESTED = "RESTART_REQUESTED"
    SIGNED_OUT = "SIGNED_OUT"
    PAIRING_RENDERED = "PAIRING_RENDERED"

    # ------------------------------------------------------------------
    # Session handle lifecycle
    # ------------------------------------------------------------------
    PAIRING_CHALLENGE = "PAIRING_CHALLENGE"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    AUTH_FAILED = "AUTH_FAILED"
    DISCONNECTED = "DISCONNECTED"
    LOADING_PROGRESS = "LOADING_PROGRESS"


# =============================================================================
# Base Events
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


@dataclass(frozen=True)
class HandleEvent(Event):
    """
    Base class for events emitted by a session handle.

    The reducer MUST ignore events whose generation does not match the
    current generation.
    """

    generation: int


# =============================================================================
# Identity
# =============================================================================

@dataclass(frozen=True)
class SessionIdentity:
    """Who the paired device is logged in as."""
    display_name: str | None
    network_address: str | None


# =============================================================================
# Supervisor-originated Events
# =============================================================================

@dataclass(frozen=True)
class InitStarted(Event):
    """A new initialization attempt begins (previous handle already disposed)."""


@dataclass(frozen=True)
class InitFailed(Event):
    """Constructing or starting the handle for `generation` raised."""
    generation: int
    reason: str


@dataclass(frozen=True)
class RetryDue(Event):
    """
    A retry timer fired.

    forced=True marks an operator restart: status and attempt cap are not
    re-checked, only staleness.
    """
    generation: int
    forced: bool = False


@dataclass(frozen=True)
class RestartRequested(Event):
    """Operator asked for a forced restart."""


@dataclass(frozen=True)
class SignedOut(Event):
    """The handle confirmed that its credentials were invalidated."""


@dataclass(frozen=True)
class PairingRendered(Event):
    """QR image for `payload` has been rendered as a data URI."""
    generation: int
    payload: str
    data_uri: str


# =============================================================================
# Session Handle Events
# =============================================================================

@dataclass(frozen=True)
class PairingChallenge(HandleEvent):
    """A fresh QR payload must be scanned by a trusted device."""
    payload: str


@dataclass(frozen=True)
class Authenticated(HandleEvent):
    """Credentials were accepted; the handle is syncing."""


@dataclass(frozen=True)
class Ready(HandleEvent):
    """Handshake complete; the handle can send."""
    identity: SessionIdentity


@dataclass(frozen=True)
class AuthFailed(HandleEvent):
    """Stored credentials were rejected."""
    reason: str


@dataclass(frozen=True)
class Disconnected(HandleEvent):
    """The session dropped; reason names the cause (e.g. LOGOUT, BROWSER_CLOSED)."""
    reason: str


@dataclass(frozen=True)
class LoadingProgress(HandleEvent):
    """Loading screen progress while syncing."""
    percent: int
    message: str | None = None
