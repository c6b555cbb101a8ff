"""
Pure lifecycle reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (status, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from session.connection_status import ConnectionStatus
from supervisor.commands import (
    CancelRetry,
    Command,
    DisposeHandle,
    LogEvent,
    Reinitialize,
    RenderPairingCode,
    ScheduleRetry,
)
from supervisor.events import (
    AuthFailed,
    Authenticated,
    Disconnected,
    Event,
    HandleEvent,
    InitFailed,
    InitStarted,
    LoadingProgress,
    PairingChallenge,
    PairingRendered,
    Ready,
    RestartRequested,
    RetryDue,
    SignedOut,
)
from supervisor.retry import FailureType, get_retry_delay_ms, should_retry
from supervisor.state_dataclass import SupervisorState


# =============================================================================
# Invariants
# =============================================================================
# - Generation is bumped ONLY by InitStarted and RestartRequested
# - Handle events for a non-current generation are ignored
# - PairingMaterial is non-None only while status is QR_READY
# - A retry timer never reinitializes on its own; RetryDue is re-validated here

_PRE_CONNECTED = frozenset({
    ConnectionStatus.INITIALIZING,
    ConnectionStatus.QR_READY,
    ConnectionStatus.CONNECTING,
})


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SupervisorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "status": state.status.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "generation": state.generation,
            "init_attempts": state.init_attempts,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SupervisorState, event: Event, reason: str
) -> tuple[SupervisorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _finish(
    prev: SupervisorState,
    new_state: SupervisorState,
    event: Event,
    source: str,
    commands: list[Command],
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """Append a state_changed log when the status moved, then order logs last."""
    if prev.status is not new_state.status:
        commands.append(
            _log(
                new_state,
                event,
                "state_changed",
                {
                    "from_state": prev.status.value,
                    "to_state": new_state.status.value,
                    "source": source,
                },
            )
        )
    return new_state, _logs_last(tuple(commands))


def _clear_session(state: SupervisorState) -> SupervisorState:
    """Drop everything that only makes sense for a live, paired handle."""
    return replace(
        state,
        pairing_payload=None,
        pairing_material=None,
        identity=None,
        loading_percent=None,
    )


def _cancel_pending_retry(state: SupervisorState) -> list[Command]:
    return [CancelRetry()] if state.retry_pending else []


def _fail(
    state: SupervisorState,
    event: Event,
    *,
    status: ConnectionStatus,
    last_error: str,
    failure: FailureType,
    decision: str,
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """
    Enter a failed status and apply the bounded-retry policy.

    The attempt counter is NOT touched here; it was bumped when the failed
    attempt started and is only compared against the cap.
    """
    new_state = replace(_clear_session(state), status=status, last_error=last_error)
    cmds: list[Command] = [_log(new_state, event, decision, {"reason": last_error})]

    if should_retry(policy=state.policy, attempts=state.init_attempts):
        delay_ms = get_retry_delay_ms(policy=state.policy, failure=failure)
        new_state = replace(new_state, retry_pending=True)
        cmds.append(
            ScheduleRetry(
                generation=state.generation,
                delay_ms=delay_ms,
                reason=failure.value,
            )
        )
        cmds.append(
            _log(
                new_state,
                event,
                "retry_scheduled",
                {"delay_ms": delay_ms, "failure": failure.value},
            )
        )
    else:
        cmds.extend(_cancel_pending_retry(state))
        new_state = replace(new_state, retry_pending=False)
        cmds.append(
            _log(
                new_state,
                event,
                "retry_exhausted",
                {
                    "failure": failure.value,
                    "max_attempts": state.policy.max_attempts,
                },
            )
        )

    return _finish(state, new_state, event, decision, cmds)


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: SupervisorState, event: Event
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """
    Pure reducer for the session lifecycle state machine.

    Given the current supervisor state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (status, event) pair is handled or explicitly ignored
    - Version-safe: ignores events from superseded handles
    """
    # ------------------------------------------------------------------
    # Supervisor-originated
    # ------------------------------------------------------------------
    if isinstance(event, InitStarted):
        cmds = _cancel_pending_retry(state)
        new_state = replace(
            _clear_session(state),
            status=ConnectionStatus.INITIALIZING,
            generation=state.generation + 1,
            init_attempts=state.init_attempts + 1,
            last_error=None,
            retry_pending=False,
        )
        cmds.append(
            _log(
                new_state,
                event,
                "init_started",
                {"attempt": new_state.init_attempts},
            )
        )
        return _finish(state, new_state, event, "init_started", cmds)

    if isinstance(event, InitFailed):
        if event.generation != state.generation:
            return _ignore(state, event, "init_failed_stale")
        return _fail(
            state,
            event,
            status=ConnectionStatus.ERROR,
            last_error=event.reason,
            failure=FailureType.INIT_ERROR,
            decision="init_failed",
        )

    if isinstance(event, RestartRequested):
        cmds = _cancel_pending_retry(state)
        new_state = replace(
            _clear_session(state),
            status=ConnectionStatus.INITIALIZING,
            generation=state.generation + 1,
            init_attempts=0,
            retry_pending=True,
        )
        cmds.extend([
            DisposeHandle(reason="restart"),
            ScheduleRetry(
                generation=new_state.generation,
                delay_ms=state.policy.restart_delay_ms,
                reason="restart",
                forced=True,
            ),
            _log(
                new_state,
                event,
                "restart_requested",
                {"delay_ms": state.policy.restart_delay_ms},
            ),
        ])
        return _finish(state, new_state, event, "restart_requested", cmds)

    if isinstance(event, RetryDue):
        if event.generation != state.generation:
            return _ignore(state, event, "retry_stale")

        new_state = replace(state, retry_pending=False)

        if event.forced:
            return new_state, (
                Reinitialize(reason="restart", forced=True),
                _log(new_state, event, "reinitialize", {"forced": True}),
            )

        if not state.status.is_retryable:
            return new_state, (
                _log(new_state, event, "ignore", {"reason": "retry_not_needed"}),
            )

        if not should_retry(policy=state.policy, attempts=state.init_attempts):
            return new_state, (
                _log(new_state, event, "ignore", {"reason": "retry_exhausted"}),
            )

        return new_state, (
            Reinitialize(reason="retry"),
            _log(new_state, event, "reinitialize", {"forced": False}),
        )

    if isinstance(event, SignedOut):
        new_state = replace(_clear_session(state), status=ConnectionStatus.DISCONNECTED)
        return _finish(
            state,
            new_state,
            event,
            "signed_out",
            [_log(new_state, event, "signed_out")],
        )

    if isinstance(event, PairingRendered):
        if (
            event.generation != state.generation
            or state.status is not ConnectionStatus.QR_READY
            or event.payload != state.pairing_payload
        ):
            return _ignore(state, event, "pairing_render_stale")
        new_state = replace(state, pairing_material=event.data_uri)
        return new_state, (_log(new_state, event, "pairing_material_ready"),)

    # ------------------------------------------------------------------
    # Session handle events (generation gated)
    # ------------------------------------------------------------------
    if isinstance(event, HandleEvent) and event.generation != state.generation:
        return _ignore(state, event, "stale_generation")

    if isinstance(event, PairingChallenge):
        cmds = _cancel_pending_retry(state)
        new_state = replace(
            _clear_session(state),
            status=ConnectionStatus.QR_READY,
            init_attempts=0,
            pairing_payload=event.payload,
            retry_pending=False,
        )
        cmds.append(RenderPairingCode(generation=state.generation, payload=event.payload))
        cmds.append(_log(new_state, event, "pairing_challenge"))
        return _finish(state, new_state, event, "pairing_challenge", cmds)

    if isinstance(event, Authenticated):
        if state.status not in _PRE_CONNECTED:
            return _ignore(state, event, "authenticated_unexpected")
        new_state = replace(
            state,
            status=ConnectionStatus.CONNECTING,
            pairing_payload=None,
            pairing_material=None,
        )
        return _finish(
            state,
            new_state,
            event,
            "authenticated",
            [_log(new_state, event, "authenticated")],
        )

    if isinstance(event, LoadingProgress):
        if state.status is ConnectionStatus.CONNECTED:
            return _ignore(state, event, "loading_after_ready")
        new_state = replace(state, loading_percent=event.percent)
        if state.status in (ConnectionStatus.INITIALIZING, ConnectionStatus.QR_READY):
            new_state = replace(
                new_state,
                status=ConnectionStatus.CONNECTING,
                pairing_payload=None,
                pairing_material=None,
            )
        return _finish(
            state,
            new_state,
            event,
            "loading_progress",
            [_log(new_state, event, "loading_progress", {"percent": event.percent})],
        )

    if isinstance(event, Ready):
        cmds = _cancel_pending_retry(state)
        new_state = replace(
            _clear_session(state),
            status=ConnectionStatus.CONNECTED,
            identity=event.identity,
            init_attempts=0,
            retry_pending=False,
        )
        cmds.append(
            _log(
                new_state,
                event,
                "ready",
                {
                    "name": event.identity.display_name,
                    "phone": event.identity.network_address,
                },
            )
        )
        return _finish(state, new_state, event, "ready", cmds)

    if isinstance(event, AuthFailed):
        return _fail(
            state,
            event,
            status=ConnectionStatus.DISCONNECTED,
            last_error=f"Authentication failed: {event.reason}",
            failure=FailureType.AUTH_REJECTED,
            decision="auth_failed",
        )

    if isinstance(event, Disconnected):
        return _fail(
            state,
            event,
            status=ConnectionStatus.DISCONNECTED,
            last_error=event.reason,
            failure=FailureType.DISCONNECTED,
            decision="disconnected",
        )

    return _ignore(state, event, "unhandled_event")
