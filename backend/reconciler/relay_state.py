"""
Relay state container.

Rules:
- Exactly RELAY_COUNT relays exist, created at startup, fixed by id.
- Only ConnectionReconciler mutates them.
- Anything outside the reconciler reads snapshots (as_dict).
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any

from constants import RELAY_COUNT, RELAY_DEFAULT_LABELS


@dataclass
class RelayState:
    """Mutable state of one relay."""

    id: int
    label: str
    is_on: bool = False

    # True while a command for this relay is being dispatched
    pending: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def default_relays() -> tuple[RelayState, ...]:
    return tuple(
        RelayState(id=i, label=RELAY_DEFAULT_LABELS[i])
        for i in range(RELAY_COUNT)
    )


def is_valid_relay_id(relay_id: int) -> bool:
    return 0 <= relay_id < RELAY_COUNT
