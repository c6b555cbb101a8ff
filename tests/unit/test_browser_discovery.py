# pylint: disable=missing-module-docstring,missing-function-docstring
from pathlib import Path
from typing import Any

import pytest

from adapters.whatsapp import browser
from adapters.whatsapp.browser import find_browser_executable, prepare_session_dir

CANDIDATES = ("/usr/bin/chromium", "/usr/bin/google-chrome")


def exists_only(*paths: str) -> Any:
    return lambda path: path in paths


@pytest.fixture
def logged(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = []
    monkeypatch.setattr(browser, "log_event", events.append)
    return events


def test_configured_path_wins(logged: list[dict[str, Any]]) -> None:
    found = find_browser_executable(
        "/opt/chrome",
        candidates=CANDIDATES,
        is_file=exists_only("/opt/chrome", "/usr/bin/chromium"),
    )

    assert found == "/opt/chrome"
    assert logged[-1]["source"] == "configured"


def test_missing_configured_path_falls_back_to_discovery(logged: list[dict[str, Any]]) -> None:
    found = find_browser_executable(
        "/opt/chrome",
        candidates=CANDIDATES,
        is_file=exists_only("/usr/bin/google-chrome"),
    )

    assert found == "/usr/bin/google-chrome"
    assert [e["event_type"] for e in logged] == ["BROWSER_CONFIGURED_MISSING", "BROWSER_SELECTED"]
    assert logged[-1]["source"] == "discovered"


def test_nothing_found_means_bundled_browser(logged: list[dict[str, Any]]) -> None:
    found = find_browser_executable(None, candidates=CANDIDATES, is_file=exists_only())

    assert found is None
    assert logged[-1]["source"] == "bundled"


def test_prepare_session_dir_keeps_profile_by_default(tmp_path: Path) -> None:
    profile = tmp_path / "profile"
    profile.mkdir()
    (profile / "Cookies").write_text("session")

    prepare_session_dir(str(profile), wipe=False)

    assert (profile / "Cookies").exists()


def test_prepare_session_dir_wipes_when_asked(tmp_path: Path) -> None:
    profile = tmp_path / "profile"
    profile.mkdir()
    (profile / "Cookies").write_text("session")

    prepare_session_dir(str(profile), wipe=True)

    assert profile.is_dir()
    assert not (profile / "Cookies").exists()


def test_prepare_session_dir_creates_missing_dir(tmp_path: Path) -> None:
    profile = tmp_path / "nested" / "profile"

    prepare_session_dir(str(profile), wipe=True)

    assert profile.is_dir()
