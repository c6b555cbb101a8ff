"""
Retry policy helpers.

Purpose:
- Centralize the bounded-retry rules for session initialization
- Keep reducer pure
- Allow the reducer to make deterministic retry decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from constants import (
    DISCONNECT_RETRY_DELAY_MS,
    INIT_MAX_ATTEMPTS,
    INIT_RETRY_DELAY_MS,
    RESTART_DELAY_MS,
)

if TYPE_CHECKING:
    from config import AppConfig


# =============================================================================
# Failure Types
# =============================================================================

class FailureType(str, Enum):
    """
    Failure classification used by retry policy.

    INIT_ERROR:
        Constructing or starting the handle raised. Retried after the
        (longer) init delay, since the cause is usually environmental
        (browser missing, page unreachable).

    DISCONNECTED:
        An established or pairing handle dropped (network loss, remote
        sign-out, browser closed). Retried after the shorter disconnect delay.

    AUTH_REJECTED:
        Stored credentials were refused. Retried like a disconnect so that
        a fresh pairing challenge is produced.

    Notes:
    - Operator restarts are not failures and bypass this policy.
    - Only *consecutive* failures count: a pairing challenge or a
      successful connection resets the attempt counter.
    """

    INIT_ERROR = "init_error"
    DISCONNECTED = "disconnected"
    AUTH_REJECTED = "auth_rejected"


# =============================================================================
# Policy
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Immutable retry knobs.

    max_attempts counts initialization attempts, including the first one:
    with max_attempts=3 the supervisor starts at most three handles in a row
    before waiting for an operator restart.
    """
    max_attempts: int = INIT_MAX_ATTEMPTS
    init_retry_delay_ms: int = INIT_RETRY_DELAY_MS
    disconnect_retry_delay_ms: int = DISCONNECT_RETRY_DELAY_MS
    restart_delay_ms: int = RESTART_DELAY_MS

    @staticmethod
    def from_config(config: AppConfig) -> RetryPolicy:
        """Build the policy from deployment configuration."""
        return RetryPolicy(
            max_attempts=config.init_max_attempts,
            init_retry_delay_ms=config.init_retry_delay_ms,
            disconnect_retry_delay_ms=config.disconnect_retry_delay_ms,
            restart_delay_ms=config.restart_delay_ms,
        )


def should_retry(*, policy: RetryPolicy, attempts: int) -> bool:
    """
    Returns True if another automatic attempt is allowed.

    attempts = initialization attempts already started since the last
    reset.
    """
    return attempts < policy.max_attempts


def get_retry_delay_ms(*, policy: RetryPolicy, failure: FailureType) -> int:
    """Returns delay before the next automatic attempt."""
    if failure is FailureType.INIT_ERROR:
        return policy.init_retry_delay_ms
    return policy.disconnect_retry_delay_ms
