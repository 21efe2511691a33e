"""
User-facing notices.

Buffered FIFO, drained by the HTTP layer with each state read. Bounded:
the oldest notice is dropped when the queue is full.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any

from constants import NOTICE_QUEUE_MAX
from observability.logger import now_ms


class NoticeLevel(str, Enum):
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    ts_ms: int

    def as_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["level"] = self.level.value
        return out


class NoticeQueue:
    """Bounded FIFO of pending notices."""

    def __init__(self, maxlen: int = NOTICE_QUEUE_MAX) -> None:
        self._items: deque[Notice] = deque(maxlen=maxlen)

    def push(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message, ts_ms=now_ms())
        self._items.append(notice)
        return notice

    def drain(self) -> tuple[Notice, ...]:
        """
        Drain all pending notices in FIFO order.

        After this call, the queue is empty.
        """
        if not self._items:
            return ()
        out = tuple(self._items)
        self._items.clear()
        return out

    def __len__(self) -> int:
        return len(self._items)
