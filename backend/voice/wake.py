"""
Wake-phrase detection.

The wake phrase is "hey miu". Speech engines rarely transcribe the
made-up word the same way twice, so the patterns below accept the common
misrecognitions. Order matters only for logging: the first matching
pattern is reported.

A direct imperative ("turn on the fan", "stop kitchen") also counts as a
wake trigger so single commands work without the wake phrase.
"""

from __future__ import annotations

import re


WAKE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"\bhey\s+miu\b",
        r"\bhey\s+mew\b",
        r"\bhey\s+mu\b",
        r"\bhey\s+meow\b",
        r"\bhey\s+mio\b",
        r"\bhey\s+miyu\b",
        r"\bhey\s+new\b",
        r"\bhey\s+music\b",
        r"\bhey\s+me\s+you\b",
        r"\bhamew\b",
    )
)

IMPERATIVE_PREFIXES: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"^(turn|switch)\s+(on|off)\b",
        r"^(on|off|start|stop)\b",
    )
)


def normalize_utterance(text: str) -> str:
    return text.strip().lower()


def match_wake(text: str) -> str | None:
    """
    Return the matched wake pattern (or imperative prefix), else None.

    text must already be normalized.
    """
    for pattern in WAKE_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    for pattern in IMPERATIVE_PREFIXES:
        if pattern.search(text):
            return pattern.pattern
    return None
