"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging

When JSON logs are disabled (local development), the same event is written
as a single `key=value` line instead.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_json_enabled: bool = True


def configure(*, enable_json: bool) -> None:
    """Select the output format. Called once by the app factory."""
    global _json_enabled  # pylint: disable=global-statement
    _json_enabled = enable_json


def _plain(event: Mapping[str, Any]) -> str:
    head = event.get("event_type", "EVENT")
    rest = " ".join(
        f"{key}={value!r}" for key, value in event.items() if key != "event_type"
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single event to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, status, etc. where relevant

    This function:
    - Serializes to JSON (or key=value when JSON logs are disabled)
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if not _json_enabled:
        _print(_plain(event))
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the service
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
