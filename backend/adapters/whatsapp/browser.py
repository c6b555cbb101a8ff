"""
Browser environment helpers for the WhatsApp Web handle.

- Locate a Chromium/Chrome executable
- Prepare (optionally wipe) the persistent profile directory that holds the
  pairing credentials
"""

from __future__ import annotations

import os
import shutil
import time
from typing import Callable, Iterable

from constants import BROWSER_EXECUTABLE_CANDIDATES
from observability.logger import log_event


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def find_browser_executable(
    explicit: str | None,
    *,
    candidates: Iterable[str] = BROWSER_EXECUTABLE_CANDIDATES,
    is_file: Callable[[str], bool] = os.path.isfile,
) -> str | None:
    """
    Resolve the browser executable to launch.

    Order: the explicitly configured path, then well-known install
    locations. Returns None when nothing is found, meaning "use the
    Chromium build managed by Playwright".
    """
    if explicit:
        if is_file(explicit):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BROWSER_SELECTED",
                "path": explicit,
                "source": "configured",
            })
            return explicit
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "BROWSER_CONFIGURED_MISSING",
            "path": explicit,
        })

    for path in candidates:
        if is_file(path):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BROWSER_SELECTED",
                "path": path,
                "source": "discovered",
            })
            return path

    log_event({
        "ts_ms": _now_ms(),
        "event_type": "BROWSER_SELECTED",
        "path": None,
        "source": "bundled",
    })
    return None


def prepare_session_dir(path: str, *, wipe: bool) -> None:
    """Create the profile directory, deleting any previous contents first if asked."""
    if wipe and os.path.isdir(path):
        shutil.rmtree(path)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "SESSION_DATA_WIPED",
            "path": path,
        })
    os.makedirs(path, exist_ok=True)
