"""
Runtime execution shell for the session lifecycle.

Responsibilities:
- Own supervisor state
- Call pure reducer
- Own the single session handle and serialize its replacement
- Execute commands with side effects (disposal, rendering, retries)
- Convert timer expiry into events
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Coroutine

from adapters.whatsapp.base import HandleFactory, SessionHandle
from constants import DISPOSE_TIMEOUT_MS
from observability.logger import log_event
from observability.metrics import timed
from presenter.qr_image import render_qr_data_uri
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
    Event,
    EventType,
    InitFailed,
    InitStarted,
    PairingRendered,
    RestartRequested,
    RetryDue,
    SignedOut,
)
from supervisor.reducer import reduce
from supervisor.retry import RetryPolicy
from supervisor.state_dataclass import SupervisorState


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class Supervisor:
    """
    Runtime execution boundary for the one session this service relays for.

    Responsibilities:
    - Own the authoritative supervisor state and the live session handle
    - Act as the universal event sink (handle events, timers, operator
      actions)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - All side effects occur *after* state has been updated
    - At most one initialization runs at a time; the previous handle is
      disposed before its replacement is built
    - Timers emit events back into handle_event (single entry point)
    - Nothing here raises into callers for lifecycle failures; they become
      InitFailed / Disconnected events instead
    """

    def __init__(
        self,
        *,
        handle_factory: HandleFactory,
        policy: RetryPolicy | None = None,
        dispose_timeout_ms: int = DISPOSE_TIMEOUT_MS,
        render_qr: Callable[[str], str] = render_qr_data_uri,
    ) -> None:
        self._state = SupervisorState(policy=policy or RetryPolicy())
        self._handle_factory = handle_factory
        self._dispose_timeout_ms = dispose_timeout_ms
        self._render_qr = render_qr

        self._handle: SessionHandle | None = None
        self._init_lock = asyncio.Lock()
        self._retry_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def state(self) -> SupervisorState:
        """
        Return the current immutable supervisor state.

        Consumers must treat it as read-only; only handle_event swaps it.
        """
        return self._state

    @property
    def handle(self) -> SessionHandle | None:
        """The live session handle, or None between generations."""
        return self._handle

    def snapshot(self) -> SupervisorState:
        """Read-only projection used by the presenter and the gateway."""
        return self._state

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the lifecycle pipeline.

        1. Pass the current state and event to the pure reducer
        2. Swap in the new state
        3. Execute all emitted commands in order
        """
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    # ------------------------------------------------------------------
    # Operator / lifecycle operations
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Kick off the first initialization without waiting for it."""
        self._spawn(self.initialize(), name="initialize")

    async def initialize(self, *, wait: bool = False) -> None:
        """
        Run one initialization attempt.

        If another attempt holds the lock the call is dropped, unless
        wait=True (operator restarts), in which case it queues behind it.
        Never raises.
        """
        if self._closed:
            return

        if self._init_lock.locked() and not wait:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INIT_SKIPPED",
                "reason": "already_initializing",
                "generation": self._state.generation,
            })
            return

        async with self._init_lock:
            await self._dispose_handle(reason="reinitialize")

            await self.handle_event(
                InitStarted(event_type=EventType.INIT_STARTED, ts_ms=_now_ms())
            )
            generation = self._state.generation

            try:
                with timed(
                    "session_init",
                    status=self._state.status.value,
                    details={"generation": generation},
                ):
                    handle = self._handle_factory(generation, self.handle_event)
                    self._handle = handle
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "HANDLE_CREATED",
                        "generation": generation,
                        "attempt": self._state.init_attempts,
                    })
                    await handle.start()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "INIT_ERROR",
                    "generation": generation,
                    "error": _describe(exc),
                    "error_type": type(exc).__name__,
                })
                await self.handle_event(
                    InitFailed(
                        event_type=EventType.INIT_FAILED,
                        ts_ms=_now_ms(),
                        generation=generation,
                        reason=_describe(exc),
                    )
                )

    def request_restart(self) -> None:
        """
        Ask for a forced restart and return immediately.

        The restart itself (disposal, delay, reinitialization) runs in the
        background.
        """
        self._spawn(
            self.handle_event(
                RestartRequested(
                    event_type=EventType.RESTART_REQUESTED, ts_ms=_now_ms()
                )
            ),
            name="restart",
        )

    async def notify_signed_out(self) -> None:
        await self.handle_event(
            SignedOut(event_type=EventType.SIGNED_OUT, ts_ms=_now_ms())
        )

    async def shutdown(self) -> None:
        """
        Clean shutdown.

        Cancels the retry timer and background tasks, waits for them, then
        disposes the handle.
        """
        self._closed = True
        self._cancel_retry()

        pending = [t for t in self._background if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self._dispose_handle(reason="shutdown")

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event(cmd.event)

        elif isinstance(cmd, RenderPairingCode):
            await self._render_pairing_code(cmd)

        elif isinstance(cmd, ScheduleRetry):
            self._schedule_retry(
                generation=cmd.generation,
                delay_ms=cmd.delay_ms,
                forced=cmd.forced,
            )

        elif isinstance(cmd, CancelRetry):
            self._cancel_retry()

        elif isinstance(cmd, DisposeHandle):
            await self._dispose_handle(reason=cmd.reason)

        elif isinstance(cmd, Reinitialize):
            self._spawn(self.initialize(wait=cmd.forced), name="reinitialize")

        else:
            raise ValueError(f"Unknown command: {cmd.command_type}")

    async def _render_pairing_code(self, cmd: RenderPairingCode) -> None:
        try:
            data_uri = await asyncio.to_thread(self._render_qr, cmd.payload)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "QR_RENDER_FAILED",
                "generation": cmd.generation,
                "error": _describe(exc),
            })
            return

        await self.handle_event(
            PairingRendered(
                event_type=EventType.PAIRING_RENDERED,
                ts_ms=_now_ms(),
                generation=cmd.generation,
                payload=cmd.payload,
                data_uri=data_uri,
            )
        )

    async def _dispose_handle(self, *, reason: str) -> None:
        """
        Best-effort disposal of the live handle.

        The reference is dropped before awaiting, so concurrent callers never
        dispose the same handle twice. Failures and timeouts are logged and
        swallowed.
        """
        handle = self._handle
        if handle is None:
            return
        self._handle = None

        try:
            await asyncio.wait_for(
                handle.destroy(), timeout=self._dispose_timeout_ms / 1000.0
            )
        except asyncio.TimeoutError:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "DISPOSE_FAILED",
                "reason": reason,
                "error": "timeout",
                "timeout_ms": self._dispose_timeout_ms,
            })
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "DISPOSE_FAILED",
                "reason": reason,
                "error": _describe(exc),
            })
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "HANDLE_DISPOSED",
                "reason": reason,
            })

    # ------------------------------------------------------------------
    # Timers / background tasks
    # ------------------------------------------------------------------

    def _schedule_retry(self, *, generation: int, delay_ms: int, forced: bool) -> None:
        """
        Schedule RetryDue after delay_ms, replacing any pending retry.

        The timer only reports; the reducer decides whether to reinitialize.
        """
        if self._closed:
            return
        self._cancel_retry()

        async def _retry_task() -> None:
            try:
                await asyncio.sleep(delay_ms / 1000.0)
            except asyncio.CancelledError:
                return

            # Fired: from here on this task is no longer the pending retry
            if self._retry_task is asyncio.current_task():
                self._retry_task = None

            await self.handle_event(
                RetryDue(
                    event_type=EventType.RETRY_DUE,
                    ts_ms=_now_ms(),
                    generation=generation,
                    forced=forced,
                )
            )

        self._retry_task = asyncio.create_task(_retry_task())

    def _cancel_retry(self) -> None:
        """Idempotent: safe to call when no retry is pending."""
        task = self._retry_task
        self._retry_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _spawn(
        self, coro: Coroutine[Any, Any, Any], *, name: str
    ) -> asyncio.Task[Any] | None:
        if self._closed:
            coro.close()
            return None
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
