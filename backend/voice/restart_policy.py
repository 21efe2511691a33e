"""
Automatic restart policy for continuous listening.

Purpose:
- Bound how fast and how often the engine restarts a recognition session
  the recognizer ended on its own
- Keep the engine's restart decision deterministic and testable

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass

from constants import (
    VOICE_RESTART_DELAYS_MS,
    VOICE_RESTART_MAX_ATTEMPTS,
    VOICE_SESSION_HEALTHY_MS,
)


# =============================================================================
# Restart State
# =============================================================================

@dataclass(frozen=True)
class RestartAttempt:
    """
    Immutable counter of consecutive quick failures.

    Semantics:
    - attempt == 0: the last session was healthy (or none has ended yet).
    - attempt >= 1: that many sessions in a row ended quickly without a
      result.
    """
    attempt: int


def next_attempt(current: RestartAttempt) -> RestartAttempt:
    """Return a new RestartAttempt with attempt incremented by 1."""
    return RestartAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RestartAttempt:
    """Returns a fresh restart attempt counter."""
    return RestartAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

def session_was_healthy(*, duration_ms: int, had_result: bool) -> bool:
    """
    A session is healthy if it produced a result or ran long enough.

    Healthy sessions reset the backoff counter.
    """
    return had_result or duration_ms >= VOICE_SESSION_HEALTHY_MS


def should_restart(attempt: RestartAttempt) -> bool:
    """
    Returns True if another automatic restart is allowed.

    attempt = consecutive quick failures so far
    """
    return attempt.attempt < VOICE_RESTART_MAX_ATTEMPTS


def get_restart_delay_ms(attempt: RestartAttempt) -> int:
    """
    Delay before the next restart.

    Grows with consecutive quick failures; clamps to the last slot.
    """
    idx = min(attempt.attempt, len(VOICE_RESTART_DELAYS_MS) - 1)
    return VOICE_RESTART_DELAYS_MS[idx]
