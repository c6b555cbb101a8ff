"""
Authoritative supervisor state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from session.connection_status import ConnectionStatus
from supervisor.events import SessionIdentity
from supervisor.retry import RetryPolicy


@dataclass(frozen=True)
class SupervisorState:
    """Immutable snapshot of all supervisor-owned state."""

    # ------------------------------------------------------------------
    # Retry configuration (fixed for the process lifetime)
    # ------------------------------------------------------------------
    policy: RetryPolicy = RetryPolicy()

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    status: ConnectionStatus = ConnectionStatus.INITIALIZING

    # ------------------------------------------------------------------
    # Handle versioning
    # ------------------------------------------------------------------
    # 0 means "no handle has been built yet"; bumped on every InitStarted
    generation: int = 0

    # Consecutive failed attempts; reset on qr_ready / connected / restart
    init_attempts: int = 0

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------
    # Raw challenge payload; the rendered image must match it
    pairing_payload: str | None = None
    pairing_material: str | None = None

    # ------------------------------------------------------------------
    # Connected identity / progress
    # ------------------------------------------------------------------
    identity: SessionIdentity | None = None
    loading_percent: int | None = None

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None

    # True while a ScheduleRetry is outstanding (cleared by RetryDue/CancelRetry)
    retry_pending: bool = False
