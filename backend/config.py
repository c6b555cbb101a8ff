"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No lifecycle logic
- No behavioral constants (see constants.py for the defaults)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from constants import (
    DEFAULT_COUNTRY_PREFIX,
    DEFAULT_PORT,
    DEFAULT_SERVICE_NAME,
    DISCONNECT_RETRY_DELAY_MS,
    DISPOSE_TIMEOUT_MS,
    INIT_MAX_ATTEMPTS,
    INIT_RETRY_DELAY_MS,
    RESTART_DELAY_MS,
    SESSION_DATA_DIR_DEFAULT,
)


_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    """
    Parse a non-negative integer variable.

    Raises:
        ValueError if the variable is set but is not a non-negative integer.
    """
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the supervisor, the session handle factory and the
    request gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    port: int
    service_name: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Session handle (browser automation)
    # ------------------------------------------------------------------

    # Explicit browser executable; None means "discover"
    chrome_path: str | None
    session_data_dir: str
    wipe_session_on_start: bool
    browser_headless: bool

    # ------------------------------------------------------------------
    # Lifecycle / retry knobs
    # ------------------------------------------------------------------

    init_max_attempts: int
    init_retry_delay_ms: int
    disconnect_retry_delay_ms: int
    restart_delay_ms: int
    dispose_timeout_ms: int

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    country_prefix: str

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(env: Mapping[str, str] | None = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable is malformed.
        """
        if env is None:
            env = os.environ

        chrome_path = env.get("CHROME_PATH") or env.get("PUPPETEER_EXECUTABLE_PATH")

        return AppConfig(
            env=env.get("ENV", "dev"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            port=_env_int(env, "PORT", DEFAULT_PORT),
            service_name=env.get("SERVICE_NAME", DEFAULT_SERVICE_NAME),

            enable_json_logs=_env_bool(env, "ENABLE_JSON_LOGS", True),

            chrome_path=chrome_path or None,
            session_data_dir=env.get("SESSION_DATA_DIR", SESSION_DATA_DIR_DEFAULT),
            wipe_session_on_start=_env_bool(env, "WIPE_SESSION_ON_START", False),
            browser_headless=_env_bool(env, "BROWSER_HEADLESS", True),

            init_max_attempts=_env_int(env, "INIT_MAX_ATTEMPTS", INIT_MAX_ATTEMPTS),
            init_retry_delay_ms=_env_int(env, "INIT_RETRY_DELAY_MS", INIT_RETRY_DELAY_MS),
            disconnect_retry_delay_ms=_env_int(
                env, "DISCONNECT_RETRY_DELAY_MS", DISCONNECT_RETRY_DELAY_MS
            ),
            restart_delay_ms=_env_int(env, "RESTART_DELAY_MS", RESTART_DELAY_MS),
            dispose_timeout_ms=_env_int(env, "DISPOSE_TIMEOUT_MS", DISPOSE_TIMEOUT_MS),

            country_prefix=env.get("COUNTRY_PREFIX", DEFAULT_COUNTRY_PREFIX),
        )
