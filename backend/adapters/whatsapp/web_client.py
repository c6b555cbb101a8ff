"""
WhatsApp Web session handle (Playwright).

Drives web.whatsapp.com in a persistent Chromium profile. The profile
directory keeps the pairing credentials across restarts of the handle.

Lifecycle detection is a polling watcher over the page DOM:

    QR container visible            -> PairingChallenge (once per payload)
    loading progress bar            -> Authenticated, LoadingProgress
    chat list visible               -> Ready
    QR again after Ready            -> Disconnected("LOGOUT")
    QR again while syncing          -> AuthFailed
    page/browser closed             -> Disconnected("BROWSER_CLOSED")
    watcher raised                  -> Disconnected("WATCHER_ERROR: ...")

All page interactions after Ready (chat lookup, sends, logout) go through a
single lock: the page is one tab and cannot serve two chats at once.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence
from urllib.parse import quote

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    async_playwright,
)

from adapters.whatsapp.base import Attachment, EventSink, HandleFactory, SessionHandle
from adapters.whatsapp.browser import find_browser_executable
from constants import (
    BROWSER_ARGS,
    BROWSER_USER_AGENT,
    CHAT_ID_SUFFIX,
    CHAT_OPEN_TIMEOUT_MS,
    PAGE_LOAD_TIMEOUT_MS,
    PAGE_POLL_INTERVAL_MS,
    WHATSAPP_WEB_URL,
)
from observability.logger import log_event
from supervisor.events import (
    AuthFailed,
    Authenticated,
    Disconnected,
    EventType,
    LoadingProgress,
    PairingChallenge,
    Ready,
    SessionIdentity,
)

if TYPE_CHECKING:
    from config import AppConfig


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


# =============================================================================
# Page selectors (WhatsApp Web changes these often; first match wins)
# =============================================================================

_COMPOSE_SELECTORS: Sequence[str] = (
    '[data-testid="conversation-compose-box-input"]',
    'footer div[contenteditable="true"][role="textbox"]',
    'div[contenteditable="true"][data-tab="10"]',
    '#main footer div[contenteditable="true"]',
)

_INVALID_CHAT_POPUP = 'div[data-testid="popup-controls-ok"]'

_ATTACH_SELECTORS: Sequence[str] = (
    '[data-testid="attach-menu-plus"]',
    '[data-icon="attach-menu-plus"]',
    '[data-icon="plus"]',
    '[data-testid="clip"]',
    '[data-icon="clip"]',
    'button[aria-label="Attach"]',
)

_DOCUMENT_INPUT_SELECTORS: Sequence[str] = (
    'input[type="file"][accept="*"]',
    'input[type="file"]',
)

_CAPTION_SELECTORS: Sequence[str] = (
    '[data-testid="media-caption-input-container"] [contenteditable="true"]',
    'div[data-testid="media-caption-text-input"]',
    '[aria-label="Add a caption"]',
    'div[contenteditable="true"][data-tab="6"]',
)

_SEND_SELECTORS: Sequence[str] = (
    '[data-testid="send"]',
    'span[data-icon="send"]',
    'button[aria-label="Send"]',
    'div[role="button"][aria-label="Send"]',
)

_MENU_SELECTORS: Sequence[str] = (
    '[data-testid="menu-bar-menu"]',
    'span[data-icon="menu"]',
    '[aria-label="Menu"]',
)

_LOGOUT_ITEM_SELECTORS: Sequence[str] = (
    'div[aria-label="Log out"]',
    'li:has-text("Log out")',
)

_LOGOUT_CONFIRM_SELECTORS: Sequence[str] = (
    '[data-testid="popup-controls-ok"]',
    'div[role="dialog"] button:has-text("Log out")',
)

# One round trip per poll: everything the watcher needs to classify the page
_PROBE_JS = """
() => {
    const ref = document.querySelector('div[data-ref]');
    const bar = document.querySelector('progress');
    const side = document.querySelector(
        '#side, [data-testid="chat-list"], div[data-tab="3"]'
    );
    return {
        qr: ref ? ref.getAttribute('data-ref') : null,
        progress: bar ? Math.round(Number(bar.value) || 0) : null,
        loggedIn: !!side,
    };
}
"""

_IDENTITY_JS = """
() => {
    const read = (key) => {
        const raw = window.localStorage.getItem(key);
        return raw === null ? null : raw;
    };
    return {
        wid: read('last-wid-md') || read('last-wid'),
        name: read('WAPushname') || read('pushname'),
    };
}
"""

_LAST_OUTGOING_JS = """
() => {
    const rows = document.querySelectorAll('#main [data-id^="true_"]');
    return rows.length ? rows[rows.length - 1].getAttribute('data-id') : null;
}
"""


def _strip_quotes(raw: str) -> str:
    return raw.strip().strip('"')


def parse_wid(raw: str | None) -> str | None:
    """
    Extract the account number from a stored WhatsApp id.

    '"8801712345678:12@c.us"' -> '8801712345678'
    """
    if not raw:
        return None
    user = _strip_quotes(raw).split("@", 1)[0].split(":", 1)[0]
    return user if user.isdigit() else None


def parse_pushname(raw: str | None) -> str | None:
    if not raw:
        return None
    return _strip_quotes(raw) or None


def chat_digits(chat_id: str) -> str:
    return chat_id[: -len(CHAT_ID_SUFFIX)] if chat_id.endswith(CHAT_ID_SUFFIX) else chat_id


class _Phase(str, Enum):
    STARTING = "starting"
    PAIRING = "pairing"
    SYNCING = "syncing"
    READY = "ready"


class WhatsAppWebClient(SessionHandle):
    """
    Session handle backed by a real browser tab on web.whatsapp.com.

    Built for exactly one generation. destroy() closes the browser but keeps
    the profile directory, so the next handle can restore the session
    without a new QR scan.
    """

    def __init__(
        self,
        *,
        generation: int,
        emit_event: EventSink,
        session_data_dir: str,
        headless: bool = True,
        executable_path: str | None = None,
        poll_interval_ms: int = PAGE_POLL_INTERVAL_MS,
    ) -> None:
        self._generation = generation
        self._emit_event = emit_event
        self._session_data_dir = session_data_dir
        self._headless = headless
        self._executable_path = executable_path
        self._poll_interval_ms = poll_interval_ms

        self._playwright: Playwright | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._watch_task: asyncio.Task[None] | None = None

        self._page_lock = asyncio.Lock()
        self._open_chat_id: str | None = None

        self._phase = _Phase.STARTING
        self._last_qr: str | None = None
        self._last_progress: int | None = None
        self._closing = False

    # ------------------------------------------------------------------
    # SessionHandle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        await self._abort_if_closing()

        self._context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir=self._session_data_dir,
            headless=self._headless,
            executable_path=self._executable_path,
            args=list(BROWSER_ARGS),
            user_agent=BROWSER_USER_AGENT,
            viewport={"width": 1280, "height": 800},
            locale="en-US",
        )
        await self._abort_if_closing()

        pages = self._context.pages
        self._page = pages[0] if pages else await self._context.new_page()
        await self._abort_if_closing()

        await self._page.goto(
            WHATSAPP_WEB_URL, wait_until="domcontentloaded", timeout=PAGE_LOAD_TIMEOUT_MS
        )
        await self._abort_if_closing()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WEB_CLIENT_STARTED",
            "generation": self._generation,
            "headless": self._headless,
            "executable": self._executable_path,
        })

        self._watch_task = asyncio.create_task(self._watch_page())

    async def destroy(self) -> None:
        if self._closing:
            return
        self._closing = True

        if self._watch_task is not None:
            self._watch_task.cancel()
            await asyncio.gather(self._watch_task, return_exceptions=True)
            self._watch_task = None

        # A start() still in flight releases whatever it creates after this point
        await self._release_browser()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WEB_CLIENT_CLOSED",
            "generation": self._generation,
        })

    async def logout(self) -> None:
        async with self._page_lock:
            page = self._require_page()
            await self._click_first(page, _MENU_SELECTORS, what="menu")
            await self._click_first(page, _LOGOUT_ITEM_SELECTORS, what="logout item")
            await self._click_first(page, _LOGOUT_CONFIRM_SELECTORS, what="logout confirm")
            self._open_chat_id = None

    async def is_registered_user(self, chat_id: str) -> bool:
        async with self._page_lock:
            return await self._open_chat(chat_id)

    async def send_text(self, chat_id: str, body: str) -> str:
        async with self._page_lock:
            page = await self._require_chat(chat_id)
            before = await page.evaluate(_LAST_OUTGOING_JS)

            compose = await self._first_present(page, _COMPOSE_SELECTORS)
            if compose is None:
                raise RuntimeError("Message input not found")
            await compose.click()
            await compose.fill(body)
            await compose.press("Enter")

            return await self._wait_for_outgoing(page, before)

    async def send_document(self, chat_id: str, attachment: Attachment, caption: str) -> str:
        async with self._page_lock:
            page = await self._require_chat(chat_id)
            before = await page.evaluate(_LAST_OUTGOING_JS)

            await self._click_first(page, _ATTACH_SELECTORS, what="attach button")
            file_input = await self._first_present(page, _DOCUMENT_INPUT_SELECTORS)
            if file_input is None:
                raise RuntimeError("Document input not found")
            await file_input.set_input_files(
                files={
                    "name": attachment.filename,
                    "mimeType": attachment.mimetype,
                    "buffer": attachment.data,
                }
            )

            caption_box = await self._wait_first(page, _CAPTION_SELECTORS)
            if caption_box is not None and caption:
                await caption_box.fill(caption)

            await self._click_first(page, _SEND_SELECTORS, what="send button")
            return await self._wait_for_outgoing(page, before)

    # ------------------------------------------------------------------
    # Watcher
    # ------------------------------------------------------------------

    async def _watch_page(self) -> None:
        interval_s = self._poll_interval_ms / 1000.0
        while not self._closing:
            page = self._page
            if page is None or page.is_closed():
                await self._emit(Disconnected, EventType.DISCONNECTED, reason="BROWSER_CLOSED")
                return

            try:
                probe = await page.evaluate(_PROBE_JS)
                await self._on_probe(probe)
            except PlaywrightError as e:
                # Navigation in progress destroys the execution context
                if page.is_closed():
                    continue
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PAGE_PROBE_FAILED",
                    "generation": self._generation,
                    "error": str(e),
                })
            except Exception as e:  # pylint: disable=broad-exception-caught
                # The watcher is the only source of lifecycle events: report and stop
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PAGE_WATCH_FAILED",
                    "generation": self._generation,
                    "error": str(e) or type(e).__name__,
                    "error_type": type(e).__name__,
                })
                reason = (
                    "BROWSER_CLOSED"
                    if page.is_closed()
                    else f"WATCHER_ERROR: {str(e) or type(e).__name__}"
                )
                await self._emit(Disconnected, EventType.DISCONNECTED, reason=reason)
                return

            await asyncio.sleep(interval_s)

    async def _on_probe(self, probe: dict[str, Any]) -> None:
        qr = probe.get("qr")
        progress = probe.get("progress")
        logged_in = bool(probe.get("loggedIn"))

        if qr:
            if self._phase is _Phase.READY:
                await self._emit(Disconnected, EventType.DISCONNECTED, reason="LOGOUT")
            elif self._phase is _Phase.SYNCING:
                await self._emit(
                    AuthFailed, EventType.AUTH_FAILED, reason="stored session was rejected"
                )
            self._phase = _Phase.PAIRING
            self._last_progress = None
            self._open_chat_id = None
            if qr != self._last_qr:
                self._last_qr = qr
                await self._emit(PairingChallenge, EventType.PAIRING_CHALLENGE, payload=qr)
            return

        if logged_in:
            if self._phase is _Phase.READY:
                return
            if self._phase is not _Phase.SYNCING:
                await self._emit(Authenticated, EventType.AUTHENTICATED)
            identity = await self._read_identity()
            self._phase = _Phase.READY
            self._last_qr = None
            await self._emit(Ready, EventType.READY, identity=identity)
            return

        if progress is not None and self._phase is not _Phase.READY:
            if self._phase is not _Phase.SYNCING:
                self._phase = _Phase.SYNCING
                await self._emit(Authenticated, EventType.AUTHENTICATED)
            if progress != self._last_progress:
                self._last_progress = progress
                await self._emit(LoadingProgress, EventType.LOADING_PROGRESS, percent=progress)

    async def _read_identity(self) -> SessionIdentity:
        page = self._require_page()
        try:
            stored = await page.evaluate(_IDENTITY_JS)
        except PlaywrightError:
            stored = {}
        return SessionIdentity(
            display_name=parse_pushname(stored.get("name")),
            network_address=parse_wid(stored.get("wid")),
        )

    async def _emit(self, cls: type, event_type: EventType, **fields: Any) -> None:
        if self._closing:
            return
        await self._emit_event(
            cls(
                event_type=event_type,
                ts_ms=_now_ms(),
                generation=self._generation,
                **fields,
            )
        )

    # ------------------------------------------------------------------
    # Page helpers
    # ------------------------------------------------------------------

    async def _abort_if_closing(self) -> None:
        """Called after each await in start(): a destroyed handle must not keep a browser."""
        if not self._closing:
            return
        await self._release_browser()
        raise RuntimeError("Session handle destroyed during start")

    async def _release_browser(self) -> None:
        # References are taken before awaiting so the profile is closed once
        context, self._context = self._context, None
        playwright, self._playwright = self._playwright, None
        self._page = None
        try:
            if context is not None:
                await context.close()
        finally:
            if playwright is not None:
                await playwright.stop()

    def _require_page(self) -> Page:
        if self._page is None or self._page.is_closed():
            raise RuntimeError("Browser page is not open")
        return self._page

    async def _open_chat(self, chat_id: str) -> bool:
        """Navigate to the chat; False when WhatsApp reports the number invalid."""
        page = self._require_page()
        digits = chat_digits(chat_id)
        await page.goto(
            f"{WHATSAPP_WEB_URL}/send?phone={quote(digits)}",
            wait_until="domcontentloaded",
            timeout=PAGE_LOAD_TIMEOUT_MS,
        )
        await page.wait_for_selector(
            ", ".join((*_COMPOSE_SELECTORS, _INVALID_CHAT_POPUP)),
            timeout=CHAT_OPEN_TIMEOUT_MS,
        )

        popup = page.locator(_INVALID_CHAT_POPUP)
        if await popup.count() > 0:
            await popup.first.click()
            self._open_chat_id = None
            return False

        self._open_chat_id = chat_id
        return True

    async def _require_chat(self, chat_id: str) -> Page:
        if self._open_chat_id != chat_id and not await self._open_chat(chat_id):
            raise RuntimeError(f"Chat {chat_id} could not be opened")
        return self._require_page()

    @staticmethod
    async def _first_present(page: Page, selectors: Sequence[str]) -> Locator | None:
        for selector in selectors:
            locator = page.locator(selector)
            if await locator.count() > 0:
                return locator.first
        return None

    async def _wait_first(self, page: Page, selectors: Sequence[str]) -> Locator | None:
        try:
            await page.wait_for_selector(", ".join(selectors), timeout=CHAT_OPEN_TIMEOUT_MS)
        except PlaywrightError:
            return None
        return await self._first_present(page, selectors)

    async def _click_first(self, page: Page, selectors: Sequence[str], *, what: str) -> None:
        locator = await self._wait_first(page, selectors)
        if locator is None:
            raise RuntimeError(f"WhatsApp Web {what} not found")
        await locator.click()

    async def _wait_for_outgoing(self, page: Page, before: str | None) -> str:
        """Wait until a new outgoing row appears and return its message id."""
        deadline = time.monotonic() + CHAT_OPEN_TIMEOUT_MS / 1000.0
        while time.monotonic() < deadline:
            latest = await page.evaluate(_LAST_OUTGOING_JS)
            if latest and latest != before:
                return latest
            await asyncio.sleep(0.25)
        raise TimeoutError("Sent message did not appear in the chat")


def make_handle_factory(config: AppConfig) -> HandleFactory:
    """Bind deployment settings once; the supervisor supplies generation and sink."""
    executable = find_browser_executable(config.chrome_path)

    def _factory(generation: int, emit_event: EventSink) -> SessionHandle:
        return WhatsAppWebClient(
            generation=generation,
            emit_event=emit_event,
            session_data_dir=config.session_data_dir,
            headless=config.browser_headless,
            executable_path=executable,
        )

    return _factory
