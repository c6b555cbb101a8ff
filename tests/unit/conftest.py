# pylint: disable=missing-module-docstring,missing-function-docstring
import pytest

from observability import logger


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    # Keep test output clean; individual tests re-patch the sink to capture
    monkeypatch.setattr(logger, "_print", lambda line: None)
    monkeypatch.setattr(logger, "_json_enabled", True)
