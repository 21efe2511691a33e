"""
Voice engine state enumeration.

Rules:
- This enum defines ONLY the listening states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in VoiceCommandEngine.
"""

from __future__ import annotations

from enum import Enum


class VoiceState(str, Enum):
    """
    Listening state of the voice engine.

    The awake window (wake phrase heard recently) is orthogonal to this
    state and tracked separately by the engine.
    """

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    DENIED = "DENIED"
