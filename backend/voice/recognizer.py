"""
Speech recognizer contract.

This module defines the *interface only* plus the events a recognizer
reports. No wake-phrase handling, restart policy or command parsing lives
here.

Key invariants:
- The engine owns listening intent; a recognizer only starts and stops
  sessions when told to.
- Recognizers report facts (result, end, error) as events; they never
  call the reconciler or change engine state.
- A recognizer may end a session on its own at any time (silence, network,
  browser policy); it reports that as RecognitionEnded.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from constants import VOICE_PERMISSION_ERRORS


# =============================================================================
# Events
# =============================================================================

class RecognitionEventType(str, Enum):
    STARTED = "STARTED"
    RESULT = "RESULT"
    ENDED = "ENDED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class RecognitionEvent:
    """
    Base event type.

    ts_ms is provided by the source (or faked in tests).
    """

    event_type: RecognitionEventType
    ts_ms: int


@dataclass(frozen=True)
class RecognitionStarted(RecognitionEvent):
    """The recognizer began capturing audio."""


@dataclass(frozen=True)
class RecognitionResult(RecognitionEvent):
    """A transcript. Only final results are acted on."""
    text: str
    is_final: bool = True


@dataclass(frozen=True)
class RecognitionEnded(RecognitionEvent):
    """The recognition session ended (requested or not)."""


@dataclass(frozen=True)
class RecognitionError(RecognitionEvent):
    """
    A recognizer error.

    error uses Web Speech API codes: "not-allowed", "no-speech",
    "aborted", "network", ...
    """
    error: str


class VoiceErrorKind(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TRANSIENT = "TRANSIENT"


def classify_error(error: str) -> VoiceErrorKind:
    if error.strip().lower() in VOICE_PERMISSION_ERRORS:
        return VoiceErrorKind.PERMISSION_DENIED
    return VoiceErrorKind.TRANSIENT


# =============================================================================
# Adapter contract
# =============================================================================

class RecognizerAdapter(ABC):
    """
    Abstract interface for a continuous speech recognizer.

    Implementations are responsible for:
    - Starting and stopping a recognition session on request
    - Delivering RecognitionEvents to the engine via its event sink

    Non-responsibilities:
    - No restart logic (the engine decides when to restart)
    - No wake-phrase or command logic
    """

    @abstractmethod
    async def start(self) -> None:
        """
        Start a recognition session.

        Must be safe to call while a session is already running.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop the current recognition session.

        Idempotent. The recognizer still reports RecognitionEnded.
        """
        raise NotImplementedError
