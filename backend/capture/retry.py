"""
Restart policy for the speech capture controller.

Purpose:
- Bound how often a provider that keeps ending is restarted
- Keep the controller's restart decision deterministic and testable

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from constants import CAPTURE_MAX_RESTARTS, CAPTURE_RESTART_DELAYS_MS


@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable restart attempt counter.

    Semantics:
    - attempt == 0: no restart performed since the last reset.
    - attempt >= 1: the Nth consecutive restart.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh restart attempt counter."""
    return RetryAttempt(attempt=0)


def should_retry(
    *,
    attempt: RetryAttempt,
    max_attempts: int = CAPTURE_MAX_RESTARTS,
) -> bool:
    """
    Returns True if another restart is allowed.

    attempt = number of consecutive restarts already performed
    """
    return attempt.attempt < max_attempts


def get_retry_delay_ms(
    *,
    attempt: RetryAttempt,
    delays_ms: tuple[int, ...] = CAPTURE_RESTART_DELAYS_MS,
) -> int:
    """
    Returns delay before restart attempt N (backoff, last slot repeats).
    """
    if not delays_ms:
        return 0
    # Clamp attempt index to last backoff slot
    idx = min(attempt.attempt, len(delays_ms) - 1)
    return delays_ms[idx]
