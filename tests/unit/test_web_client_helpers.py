# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access
import asyncio
from typing import Any

import pytest

from adapters.whatsapp import web_client
from adapters.whatsapp.web_client import (
    WhatsAppWebClient,
    chat_digits,
    parse_pushname,
    parse_wid,
)
from supervisor.events import Event, EventType, SessionIdentity


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('"8801712345678:12@c.us"', "8801712345678"),
        ("8801712345678@c.us", "8801712345678"),
        ("8801712345678", "8801712345678"),
        ('"abc@lid"', None),
        ("", None),
        (None, None),
    ],
)
def test_parse_wid(raw: Any, expected: Any) -> None:
    assert parse_wid(raw) == expected


def test_parse_pushname() -> None:
    assert parse_pushname('"Front Desk"') == "Front Desk"
    assert parse_pushname('""') is None
    assert parse_pushname(None) is None


def test_chat_digits() -> None:
    assert chat_digits("8801712345678@c.us") == "8801712345678"
    assert chat_digits("8801712345678") == "8801712345678"


class Recorder:
    def __init__(self) -> None:
        self.events: list[Event] = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    def types(self) -> list[EventType]:
        return [e.event_type for e in self.events]


def make_client(recorder: Recorder) -> WhatsAppWebClient:
    client = WhatsAppWebClient(generation=7, emit_event=recorder, session_data_dir="/tmp/unused")

    async def identity() -> SessionIdentity:
        return SessionIdentity(display_name="Front Desk", network_address="8801700000000")

    client._read_identity = identity  # type: ignore[method-assign]
    return client


def probe(*, qr: Any = None, progress: Any = None, logged_in: bool = False) -> dict[str, Any]:
    return {"qr": qr, "progress": progress, "loggedIn": logged_in}


def feed(client: WhatsAppWebClient, *probes: dict[str, Any]) -> None:
    async def run() -> None:
        for p in probes:
            await client._on_probe(p)

    asyncio.run(run())


def test_same_qr_is_reported_once() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    feed(client, probe(qr="2@a"), probe(qr="2@a"), probe(qr="2@b"))

    assert recorder.types() == [EventType.PAIRING_CHALLENGE] * 2
    assert [e.payload for e in recorder.events] == ["2@a", "2@b"]  # type: ignore[attr-defined]
    assert all(e.generation == 7 for e in recorder.events)  # type: ignore[attr-defined]


def test_scan_then_sync_then_ready() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    feed(
        client,
        probe(qr="2@a"),
        probe(progress=10),
        probe(progress=10),
        probe(progress=80),
        probe(logged_in=True),
        probe(logged_in=True),
    )

    assert recorder.types() == [
        EventType.PAIRING_CHALLENGE,
        EventType.AUTHENTICATED,
        EventType.LOADING_PROGRESS,
        EventType.LOADING_PROGRESS,
        EventType.READY,
    ]
    assert recorder.events[-1].identity.display_name == "Front Desk"  # type: ignore[attr-defined]


def test_restored_session_goes_straight_to_ready() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    feed(client, probe(logged_in=True))

    assert recorder.types() == [EventType.AUTHENTICATED, EventType.READY]


def test_qr_after_ready_is_a_logout_disconnect() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    feed(client, probe(logged_in=True), probe(qr="2@new"))

    assert recorder.types()[-2:] == [EventType.DISCONNECTED, EventType.PAIRING_CHALLENGE]
    assert recorder.events[-2].reason == "LOGOUT"  # type: ignore[attr-defined]


def test_qr_while_syncing_is_auth_failure() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    feed(client, probe(progress=30), probe(qr="2@again"))

    assert recorder.types() == [
        EventType.AUTHENTICATED,
        EventType.LOADING_PROGRESS,
        EventType.AUTH_FAILED,
        EventType.PAIRING_CHALLENGE,
    ]


def test_nothing_is_emitted_once_closing() -> None:
    recorder = Recorder()
    client = make_client(recorder)
    client._closing = True

    feed(client, probe(qr="2@a"), probe(logged_in=True))

    assert recorder.events == []


def test_destroy_before_start_is_a_no_op() -> None:
    recorder = Recorder()
    client = make_client(recorder)

    async def run() -> None:
        await client.destroy()
        await client.destroy()

    asyncio.run(run())

    assert recorder.events == []


# ---------------------------------------------------------------------
# Browser lifecycle against an in-memory Playwright stand-in
# ---------------------------------------------------------------------

BLANK = {"qr": None, "progress": None, "loggedIn": False}


class FakePage:
    def __init__(
        self, probes: list[dict[str, Any]] | None = None, *, close_after_probe: bool = False
    ) -> None:
        self.probes = list(probes or [])
        self.close_after_probe = close_after_probe
        self.closed = False

    def is_closed(self) -> bool:
        return self.closed

    async def goto(self, url: str, **_: Any) -> None:
        self.url = url

    async def evaluate(self, _script: str) -> dict[str, Any]:
        result = self.probes.pop(0) if self.probes else BLANK
        if self.close_after_probe:
            self.closed = True
        return result


class FakeContext:
    def __init__(self) -> None:
        self.pages = [FakePage()]
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self, launch_gate: asyncio.Event) -> None:
        self.launch_gate = launch_gate
        self.chromium = self
        self.context: FakeContext | None = None
        self.stopped = False

    async def launch_persistent_context(self, **_: Any) -> FakeContext:
        await self.launch_gate.wait()
        self.context = FakeContext()
        return self.context

    async def stop(self) -> None:
        self.stopped = True


class FakePlaywrightManager:
    def __init__(self, start_gate: asyncio.Event, launch_gate: asyncio.Event) -> None:
        self.start_gate = start_gate
        self.playwright = FakePlaywright(launch_gate)

    async def start(self) -> FakePlaywright:
        await self.start_gate.wait()
        return self.playwright


def install_playwright(
    monkeypatch: pytest.MonkeyPatch, *, held: str | None = None
) -> tuple[FakePlaywrightManager, dict[str, asyncio.Event]]:
    gates = {"start": asyncio.Event(), "launch": asyncio.Event()}
    for name, gate in gates.items():
        if name != held:
            gate.set()
    manager = FakePlaywrightManager(gates["start"], gates["launch"])
    monkeypatch.setattr(web_client, "async_playwright", lambda: manager)
    return manager, gates


def test_start_then_destroy_closes_browser(monkeypatch: pytest.MonkeyPatch) -> None:
    async def scenario() -> FakePlaywrightManager:
        manager, _ = install_playwright(monkeypatch)
        client = make_client(Recorder())

        await client.start()
        assert client._watch_task is not None
        await client.destroy()
        assert client._watch_task is None
        return manager

    playwright = asyncio.run(scenario()).playwright

    assert playwright.context is not None and playwright.context.closed
    assert playwright.stopped


@pytest.mark.parametrize("held", ["start", "launch"])
def test_destroy_during_start_leaves_no_browser_running(
    monkeypatch: pytest.MonkeyPatch, held: str
) -> None:
    async def scenario() -> tuple[FakePlaywrightManager, WhatsAppWebClient]:
        manager, gates = install_playwright(monkeypatch, held=held)
        client = make_client(Recorder())

        starting = asyncio.create_task(client.start())
        await asyncio.sleep(0.01)

        await client.destroy()
        gates[held].set()

        with pytest.raises(RuntimeError):
            await starting
        return manager, client

    manager, client = asyncio.run(scenario())
    playwright = manager.playwright

    assert playwright.stopped
    assert playwright.context is None or playwright.context.closed
    assert client._watch_task is None
    assert client._context is None


# ---------------------------------------------------------------------
# Watcher failures
# ---------------------------------------------------------------------

def watch(client: WhatsAppWebClient, page: FakePage) -> None:
    client._page = page  # type: ignore[assignment]
    asyncio.run(asyncio.wait_for(client._watch_page(), timeout=2.0))


def test_page_closing_during_identity_read_reports_disconnect() -> None:
    recorder = Recorder()
    client = WhatsAppWebClient(
        generation=7, emit_event=recorder, session_data_dir="/tmp/unused", poll_interval_ms=1
    )

    watch(client, FakePage([probe(logged_in=True)], close_after_probe=True))

    assert recorder.types() == [EventType.AUTHENTICATED, EventType.DISCONNECTED]
    assert recorder.events[-1].reason == "BROWSER_CLOSED"  # type: ignore[attr-defined]


class FailingOnReady(Recorder):
    async def __call__(self, event: Event) -> None:
        await super().__call__(event)
        if event.event_type is EventType.READY:
            raise RuntimeError("sink failed")


def test_unexpected_watcher_error_reports_disconnect() -> None:
    recorder = FailingOnReady()
    client = make_client(recorder)
    client._poll_interval_ms = 1

    watch(client, FakePage([probe(logged_in=True)]))

    assert recorder.types() == [
        EventType.AUTHENTICATED,
        EventType.READY,
        EventType.DISCONNECTED,
    ]
    assert recorder.events[-1].reason == "WATCHER_ERROR: sink failed"  # type: ignore[attr-defined]
