"""
Side-effect command definitions for the lifecycle supervisor.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    Stable discriminants used for logging and runtime dispatch.
    """

    # Session handle
    DISPOSE_HANDLE = "DISPOSE_HANDLE"
    REINITIALIZE = "REINITIALIZE"

    # Pairing
    RENDER_PAIRING_CODE = "RENDER_PAIRING_CODE"

    # Retry timers
    SCHEDULE_RETRY = "SCHEDULE_RETRY"
    CANCEL_RETRY = "CANCEL_RETRY"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Session Handle Commands
# =============================================================================

@dataclass(frozen=True)
class DisposeHandle(Command):
    """Best-effort disposal of the live handle (failures are swallowed)."""
    reason: str
    command_type: CommandType = CommandType.DISPOSE_HANDLE


@dataclass(frozen=True)
class Reinitialize(Command):
    """
    Run a fresh initialization attempt in the background.

    forced=True (operator restart) queues behind an attempt already in
    flight instead of being dropped.
    """
    reason: str
    forced: bool = False
    command_type: CommandType = CommandType.REINITIALIZE


# =============================================================================
# Pairing Commands
# =============================================================================

@dataclass(frozen=True)
class RenderPairingCode(Command):
    """
    Render `payload` as a QR image.

    Runtime responsibilities:
    - render the image
    - emit PairingRendered(generation, payload, data_uri)
    """
    generation: int
    payload: str
    command_type: CommandType = CommandType.RENDER_PAIRING_CODE


# =============================================================================
# Retry Commands
# =============================================================================

@dataclass(frozen=True)
class ScheduleRetry(Command):
    """
    Request that runtime schedule a retry after delay_ms.

    Runtime responsibilities:
    - replace any pending retry timer
    - wait delay_ms
    - emit RetryDue(generation=..., forced=...)

    The reducer re-validates the RetryDue event; the timer never
    re-initializes on its own.
    """
    generation: int
    delay_ms: int
    reason: str
    forced: bool = False
    command_type: CommandType = CommandType.SCHEDULE_RETRY


@dataclass(frozen=True)
class CancelRetry(Command):
    """Cancel the pending retry timer, if any."""
    command_type: CommandType = CommandType.CANCEL_RETRY


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
