"""
Voice command extraction.

Policy (kept literal, do not reorder without product input):
- Relays are tried in id order 0..3; the first relay whose vocabulary
  appears in the utterance wins, so an utterance naming two relays
  resolves to the lower id.
- Off words are tried before on words, so "start ... stop" means off.
- No relay or no action means no command.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from constants import RELAY_DEFAULT_LABELS


class VoiceAction(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(frozen=True)
class VoiceCommand:
    relay_id: int
    action: VoiceAction

    @property
    def target_on(self) -> bool:
        return self.action is VoiceAction.ON

    def describe(self) -> str:
        return f"Turning {self.action.value.upper()} {RELAY_DEFAULT_LABELS[self.relay_id]}"


def _words(*words: str, plural: bool = False) -> re.Pattern[str]:
    alternation = "|".join(
        r"\s+".join(re.escape(part) for part in w.split()) for w in words
    )
    suffix = "s?" if plural else ""
    return re.compile(rf"\b(?:{alternation}){suffix}\b")


# Ordinal name, spoken number, semantic label; "lights" and "fans" count too
RELAY_VOCABULARY: tuple[re.Pattern[str], ...] = (
    _words("relay 1", "relay one", "first", "one", "living room", plural=True),
    _words("relay 2", "relay two", "second", "two", "bedroom light", plural=True),
    _words("relay 3", "relay three", "third", "three", "kitchen", plural=True),
    _words("relay 4", "relay four", "fourth", "four", "fan", plural=True),
)

OFF_WORDS = _words("off", "stop", "kill", "deactivate", "shutdown", "shut down")
ON_WORDS = _words("on", "start", "active", "activate", "enable", "engage")


def match_relay(text: str) -> int | None:
    for relay_id, pattern in enumerate(RELAY_VOCABULARY):
        if pattern.search(text):
            return relay_id
    return None


def match_action(text: str) -> VoiceAction | None:
    if OFF_WORDS.search(text):
        return VoiceAction.OFF
    if ON_WORDS.search(text):
        return VoiceAction.ON
    return None


def parse_command(text: str) -> VoiceCommand | None:
    """
    Extract (relay, action) from a normalized utterance.

    >>> parse_command("kitchen off")
    VoiceCommand(relay_id=2, action=<VoiceAction.OFF: 'off'>)
    """
    relay_id = match_relay(text)
    if relay_id is None:
        return None
    action = match_action(text)
    if action is None:
        return None
    return VoiceCommand(relay_id=relay_id, action=action)
