"""
Relay status parser.

The firmware renders its root page as HTML lines such as
"Relay 1: ON <a href='/toggle?r=0'>Toggle</a><br>". Display labels are
1-based, relay ids are 0-based.
"""

from __future__ import annotations

import re

from constants import RELAY_COUNT


_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"Relay {i + 1}: (ON|OFF)", re.IGNORECASE)
    for i in range(RELAY_COUNT)
)


def parse_relay_status(text: str) -> tuple[bool, ...]:
    """
    Return exactly RELAY_COUNT booleans; relays not mentioned are OFF.

    >>> parse_relay_status("Relay 1: ON Relay 3: OFF")
    (True, False, False, False)
    """
    states = [False] * RELAY_COUNT
    for i, pattern in enumerate(_PATTERNS):
        match = pattern.search(text)
        if match:
            states[i] = match.group(1).upper() == "ON"
    return tuple(states)
