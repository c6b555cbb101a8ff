"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for behavioral defaults of the relay service.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- Values that operators tune per deployment are only *defaults* here;
  AppConfig reads the environment and falls back to these.
- No magic numbers elsewhere in the codebase.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# HTTP service
# =============================================================================

DEFAULT_PORT: Final[int] = 8080
DEFAULT_SERVICE_NAME: Final[str] = "WhatsApp Relay Service"

# =============================================================================
# Session lifecycle / retry policy
# =============================================================================

# Consecutive failed initializations tolerated before operator action is needed
INIT_MAX_ATTEMPTS: Final[int] = 3

# Backoff after construction/start of the session handle raised
INIT_RETRY_DELAY_MS: Final[int] = 15_000

# Backoff after an unsolicited disconnect or auth rejection
DISCONNECT_RETRY_DELAY_MS: Final[int] = 5_000

# Settling delay between operator restart and the new initialization
RESTART_DELAY_MS: Final[int] = 2_000

# Upper bound on awaiting disposal of the previous handle
DISPOSE_TIMEOUT_MS: Final[int] = 10_000

# =============================================================================
# Session handle (WhatsApp Web via browser automation)
# =============================================================================

SESSION_DATA_DIR_DEFAULT: Final[str] = "/tmp/whatsapp-session"
WHATSAPP_WEB_URL: Final[str] = "https://web.whatsapp.com"

# Polling interval of the page watcher that turns DOM changes into events
PAGE_POLL_INTERVAL_MS: Final[int] = 1_000

# Navigation / selector waits
PAGE_LOAD_TIMEOUT_MS: Final[int] = 60_000
CHAT_OPEN_TIMEOUT_MS: Final[int] = 30_000

BROWSER_ARGS: Final[Tuple[str, ...]] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)

BROWSER_USER_AGENT: Final[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Searched in order when no executable is configured explicitly
BROWSER_EXECUTABLE_CANDIDATES: Final[Tuple[str, ...]] = (
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/google-chrome",
    "/snap/bin/chromium",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
)

# =============================================================================
# Addressing
# =============================================================================

DEFAULT_COUNTRY_PREFIX: Final[str] = "880"
TRUNK_PREFIX: Final[str] = "0"
NATIONAL_NUMBER_LEN: Final[int] = 11
CHAT_ID_SUFFIX: Final[str] = "@c.us"

# =============================================================================
# Documents
# =============================================================================

DOCUMENT_MIMETYPE: Final[str] = "application/pdf"
DEFAULT_DOCUMENT_FILENAME: Final[str] = "Invoice.pdf"

# =============================================================================
# Pairing presenter
# =============================================================================

QR_PAGE_REFRESH_S: Final[int] = 5
LOADING_PAGE_REFRESH_S: Final[int] = 3
QR_IMAGE_WIDTH_PX: Final[int] = 300
QR_BORDER_MODULES: Final[int] = 4

# =============================================================================
# Error messages surfaced to HTTP callers
# =============================================================================

MSG_SEND_FIELDS_REQUIRED: Final[str] = "Phone and message are required"
MSG_PHONE_REQUIRED: Final[str] = "Phone is required"
MSG_NOT_CONNECTED: Final[str] = "WhatsApp not connected. Please scan QR code first."
MSG_NOT_REGISTERED: Final[str] = "This phone number is not registered on WhatsApp"
MSG_NO_SESSION: Final[str] = "No active WhatsApp session"
