"""
Timing metrics for device I/O.

One measurement == one METRIC_TIMER event through observability.logger.
Durations come from the monotonic clock; the event's ts_ms is wall-clock.

Use timed() around a probe tier or a command request. The dict it yields
collects fields that are only known at the end (outcome, status code) and
is attached to the event next to the labels given up front:

    with timed("probe_readable", address=host) as details:
        ...
        details["outcome"] = "ok"
"""

from __future__ import annotations

import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


# timer_id -> (metric_name, start_ns)
_active_timers: dict[str, tuple[str, int]] = {}


def start_timer(name: str) -> str:
    """
    Start a timer and return its opaque id.

    Pair with stop_timer() in a finally block, or use timed().
    """
    timer_id = f"timer_{uuid.uuid4().hex[:12]}"
    _active_timers[timer_id] = (name, time.monotonic_ns())
    return timer_id


def stop_timer(
    timer_id: str,
    *,
    details: dict[str, Any] | None = None,
) -> int | None:
    """Emit the metric for timer_id. Returns duration_ms, or None if unknown."""
    entry = _active_timers.pop(timer_id, None)
    if entry is None:
        return None

    name, start_ns = entry
    duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

    log_event({
        "ts_ms": now_ms(),
        "event_type": "METRIC_TIMER",
        "metric": name,
        "value_ms": duration_ms,
        "details": details or {},
    })
    return duration_ms


@contextmanager
def timed(name: str, **labels: Any) -> Iterator[dict[str, Any]]:
    """
    Time the block and emit exactly one metric, even if the block raises
    or returns early. Exceptions are not suppressed.
    """
    details: dict[str, Any] = dict(labels)
    timer_id = start_timer(name)
    try:
        yield details
    finally:
        stop_timer(timer_id, details=details)


def active_timer_count() -> int:
    return len(_active_timers)
