# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import threading
from typing import Any

import pytest

from fakes import FAST_POLICY, SLOW_POLICY, FakeFactory, eventually, fake_render
from session.connection_status import ConnectionStatus
from supervisor.runtime import Supervisor


def make_supervisor(factory: FakeFactory, **kwargs: Any) -> Supervisor:
    kwargs.setdefault("policy", SLOW_POLICY)
    kwargs.setdefault("render_qr", fake_render)
    return Supervisor(handle_factory=factory, **kwargs)


def test_initialize_builds_and_starts_handle_for_new_generation() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory)

        await supervisor.initialize()

        assert supervisor.state.generation == 1
        assert supervisor.state.init_attempts == 1
        assert supervisor.state.status is ConnectionStatus.INITIALIZING
        assert supervisor.handle is factory.last
        assert factory.last.generation == 1
        assert factory.last.started

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_previous_handle_is_disposed_before_replacement() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory)

        await supervisor.initialize()
        await supervisor.initialize()

        assert factory.journal == [("build", 1), ("destroy", 1), ("build", 2)]

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_init_failure_becomes_error_state_not_exception() -> None:
    async def scenario() -> None:
        factory = FakeFactory(fail_start=RuntimeError("chrome missing"))
        supervisor = make_supervisor(factory)

        await supervisor.initialize()

        assert supervisor.state.status is ConnectionStatus.ERROR
        assert supervisor.state.last_error == "chrome missing"
        assert supervisor.state.retry_pending is True

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_automatic_retries_stop_at_cap() -> None:
    async def scenario() -> None:
        factory = FakeFactory(fail_start=RuntimeError("chrome missing"))
        supervisor = make_supervisor(factory, policy=FAST_POLICY)

        await supervisor.initialize()
        await eventually(
            lambda: len(factory.handles) == FAST_POLICY.max_attempts
            and supervisor.state.status is ConnectionStatus.ERROR
            and not supervisor.state.retry_pending
        )
        await asyncio.sleep(0.05)

        assert len(factory.handles) == FAST_POLICY.max_attempts
        assert supervisor.state.init_attempts == FAST_POLICY.max_attempts

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_dispose_failure_is_logged_and_swallowed(monkeypatch: pytest.MonkeyPatch) -> None:
    logged: list[dict[str, Any]] = []
    monkeypatch.setattr("supervisor.runtime.log_event", logged.append)

    async def scenario() -> None:
        factory = FakeFactory(destroy_error=RuntimeError("already gone"))
        supervisor = make_supervisor(factory)

        await supervisor.initialize()
        await supervisor.initialize()

        assert supervisor.state.generation == 2
        assert len(factory.handles) == 2

        await supervisor.shutdown()

    asyncio.run(scenario())

    failures = [e for e in logged if e.get("event_type") == "DISPOSE_FAILED"]
    assert failures and failures[0]["error"] == "already gone"


def test_hung_disposal_is_bounded_by_timeout() -> None:
    async def scenario() -> None:
        factory = FakeFactory(destroy_delay_s=10.0)
        supervisor = make_supervisor(factory, dispose_timeout_ms=20)

        await supervisor.initialize()
        await asyncio.wait_for(supervisor.initialize(), timeout=2.0)

        assert len(factory.handles) == 2
        assert supervisor.handle is factory.last

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_overlapping_initialize_is_dropped() -> None:
    async def scenario() -> None:
        gate = asyncio.Event()
        factory = FakeFactory(start_gate=gate)
        supervisor = make_supervisor(factory)

        first = asyncio.create_task(supervisor.initialize())
        await eventually(lambda: len(factory.handles) == 1)

        await supervisor.initialize()
        assert len(factory.handles) == 1

        gate.set()
        await first
        assert factory.last.started
        assert supervisor.state.generation == 1

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_pairing_challenge_produces_rendered_material() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory)

        await supervisor.initialize()
        await factory.last.emit_pairing("2@xyz")

        assert supervisor.state.status is ConnectionStatus.QR_READY
        assert supervisor.state.pairing_material == "data:image/png;base64,2@xyz"

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_render_failure_leaves_qr_ready_without_material() -> None:
    def broken_render(payload: str) -> str:
        raise ValueError(f"cannot encode {payload}")

    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory, render_qr=broken_render)

        await supervisor.initialize()
        await factory.last.emit_pairing()

        assert supervisor.state.status is ConnectionStatus.QR_READY
        assert supervisor.state.pairing_material is None

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_events_from_replaced_handle_do_not_change_state() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory)

        await supervisor.initialize()
        old = factory.last
        await supervisor.initialize()

        await old.emit_ready()

        assert supervisor.state.status is ConnectionStatus.INITIALIZING
        assert supervisor.state.identity is None

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_disconnect_reinitializes_after_backoff() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory, policy=FAST_POLICY)

        await supervisor.initialize()
        await factory.last.emit_ready()
        assert supervisor.state.status is ConnectionStatus.CONNECTED

        await factory.last.emit_disconnected("NAVIGATION")
        await eventually(lambda: len(factory.handles) == 2 and factory.last.started)

        assert factory.handles[0].destroyed
        assert supervisor.state.generation == 2
        assert supervisor.state.last_error is None

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_request_restart_returns_before_restart_happens() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory, policy=FAST_POLICY)

        await supervisor.initialize()
        await factory.last.emit_ready()

        supervisor.request_restart()
        assert supervisor.state.status is ConnectionStatus.CONNECTED

        await eventually(lambda: len(factory.handles) == 2 and factory.last.started)

        assert factory.handles[0].destroyed
        # restart and the new attempt each bump the generation
        assert factory.last.generation == 3
        assert supervisor.state.init_attempts == 1

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_restart_during_stuck_initialization_still_reinitializes() -> None:
    async def scenario() -> None:
        gate = asyncio.Event()
        factory = FakeFactory(start_gate=gate)
        supervisor = make_supervisor(factory, policy=FAST_POLICY)

        stuck = asyncio.create_task(supervisor.initialize())
        await eventually(lambda: len(factory.handles) == 1)

        # Disposal unblocks the stuck start, which then fails for a stale generation
        supervisor.request_restart()
        await stuck
        await eventually(lambda: len(factory.handles) == 2 and factory.last.started)

        assert supervisor.state.status is ConnectionStatus.INITIALIZING
        assert supervisor.state.last_error is None
        assert factory.last.generation == supervisor.state.generation

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_restart_after_exhaustion_starts_fresh_count() -> None:
    async def scenario() -> None:
        factory = FakeFactory(fail_start=RuntimeError("chrome missing"))
        supervisor = make_supervisor(factory, policy=FAST_POLICY)

        await supervisor.initialize()
        await eventually(
            lambda: len(factory.handles) == 3 and not supervisor.state.retry_pending
        )

        supervisor.request_restart()
        await eventually(lambda: len(factory.handles) >= 4)

        assert supervisor.state.init_attempts >= 1

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_notify_signed_out_disconnects_without_retry() -> None:
    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory)

        await supervisor.initialize()
        await factory.last.emit_ready()
        await supervisor.notify_signed_out()

        assert supervisor.state.status is ConnectionStatus.DISCONNECTED
        assert supervisor.state.identity is None
        assert supervisor.state.retry_pending is False

        await supervisor.shutdown()

    asyncio.run(scenario())


def test_shutdown_cancels_pending_retry_and_disposes_handle() -> None:
    async def scenario() -> None:
        factory = FakeFactory(fail_start=RuntimeError("chrome missing"))
        supervisor = make_supervisor(factory, policy=SLOW_POLICY)

        await supervisor.initialize()
        assert supervisor.state.retry_pending

        await supervisor.shutdown()
        await asyncio.sleep(0.02)

        assert factory.last.destroyed
        assert supervisor.handle is None
        assert len(factory.handles) == 1

    asyncio.run(scenario())


def test_pairing_code_is_rendered_off_the_event_loop_thread() -> None:
    render_threads: list[int] = []

    def recording_render(payload: str) -> str:
        render_threads.append(threading.get_ident())
        return fake_render(payload)

    async def scenario() -> None:
        factory = FakeFactory()
        supervisor = make_supervisor(factory, render_qr=recording_render)

        await supervisor.initialize()
        await factory.last.emit_pairing("2@xyz")

        assert supervisor.state.pairing_material == "data:image/png;base64,2@xyz"

        await supervisor.shutdown()

    asyncio.run(scenario())

    assert render_threads and render_threads[0] != threading.get_ident()
