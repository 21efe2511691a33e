"""
Continuous voice-command engine.

Responsibilities:
- Own listening state (IDLE / LISTENING / DENIED) and listening intent
- Restart recognition sessions the recognizer ends on its own, within the
  bounds of voice.restart_policy
- Gate utterances behind the wake phrase and the renewable awake window
- Turn utterances into VoiceCommands and hand them to the command sink

Non-responsibilities:
- Speech recognition itself (RecognizerAdapter)
- Relay state (the command sink, normally ConnectionReconciler.request_state,
  decides whether a command changes anything)

Event flow:

    recognizer --RecognitionEvent--> handle_event()
        STARTED  -> bookkeeping only
        RESULT   -> on_utterance() (final results only)
        ENDED    -> restart if listening is still desired, else IDLE
        ERROR    -> DENIED on permission errors, ignored otherwise
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from constants import VOICE_AWAKE_WINDOW_MS, ms_to_seconds
from observability.logger import log_event
from voice.command_parser import VoiceCommand, parse_command
from voice.recognizer import (
    RecognitionEnded,
    RecognitionError,
    RecognitionEvent,
    RecognitionResult,
    RecognitionStarted,
    RecognizerAdapter,
    VoiceErrorKind,
    classify_error,
)
from voice.restart_policy import (
    RestartAttempt,
    get_restart_delay_ms,
    next_attempt,
    reset_attempt,
    session_was_healthy,
    should_restart,
)
from voice.voice_state import VoiceState
from voice.wake import match_wake, normalize_utterance


CommandSink = Callable[[VoiceCommand], Awaitable[Any]]
FeedbackSink = Callable[[dict[str, Any]], Awaitable[None]]
SleepFn = Callable[[float], Awaitable[None]]


def _monotonic_ms() -> int:
    return time.monotonic_ns() // 1_000_000


async def _no_feedback(_: dict[str, Any]) -> None:
    return None


@dataclass(frozen=True)
class Utterance:
    """A finalized transcript, discarded after classification."""
    text: str
    ts_ms: int


@dataclass(frozen=True)
class VoiceSession:
    """
    Read-only view of the engine's session state, safe to send to clients.

    awake_remaining_ms is relative; the engine's monotonic deadline never
    leaves the process.
    """
    state: VoiceState
    active: bool
    awake_remaining_ms: int | None


class VoiceCommandEngine:
    """Single writer of voice state for one recognizer."""

    def __init__(
        self,
        *,
        recognizer: RecognizerAdapter,
        on_command: CommandSink,
        emit_feedback: FeedbackSink | None = None,
        clock_ms: Callable[[], int] = _monotonic_ms,
        sleep: SleepFn = asyncio.sleep,
        awake_window_ms: int = VOICE_AWAKE_WINDOW_MS,
    ) -> None:
        self._recognizer = recognizer
        self._on_command = on_command
        self._emit_feedback = emit_feedback or _no_feedback
        self._clock_ms = clock_ms
        self._sleep = sleep
        self._awake_window_ms = awake_window_ms

        self._state = VoiceState.IDLE
        self._desired_listening = False
        self._awake_until_ms: int | None = None

        self._restart_task: asyncio.Task[None] | None = None
        self._restart_attempt: RestartAttempt = reset_attempt()
        self._session_started_ms: int | None = None
        self._session_had_result = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def desired_listening(self) -> bool:
        return self._desired_listening

    @property
    def awake_until_ms(self) -> int | None:
        return self._awake_until_ms

    @property
    def restart_attempt(self) -> RestartAttempt:
        return self._restart_attempt

    @property
    def restart_pending(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    def is_awake(self) -> bool:
        return (
            self._awake_until_ms is not None
            and self._clock_ms() < self._awake_until_ms
        )

    def awake_remaining_ms(self) -> int | None:
        if not self.is_awake():
            return None
        assert self._awake_until_ms is not None
        return self._awake_until_ms - self._clock_ms()

    def session(self) -> VoiceSession:
        return VoiceSession(
            state=self._state,
            active=self._state is VoiceState.LISTENING,
            awake_remaining_ms=self.awake_remaining_ms(),
        )

    # ------------------------------------------------------------------
    # User control
    # ------------------------------------------------------------------

    async def toggle_listening(self) -> VoiceState:
        """
        LISTENING -> IDLE, or IDLE/DENIED -> LISTENING.

        Leaving DENIED this way is the explicit user retry.
        """
        if self._state is VoiceState.LISTENING:
            self._desired_listening = False
            self._cancel_restart()
            self._set_state(VoiceState.IDLE, reason="user_stop")
            await self._recognizer.stop()
            return self._state

        self._desired_listening = True
        self._restart_attempt = reset_attempt()
        self._set_state(VoiceState.LISTENING, reason="user_start")
        await self._start_session()
        return self._state

    async def shutdown(self) -> None:
        """Tear down listening intent and any pending restart."""
        self._desired_listening = False
        self._cancel_restart()
        if self._restart_task is not None:
            try:
                await self._restart_task
            except asyncio.CancelledError:
                pass
            self._restart_task = None
        if self._state is VoiceState.LISTENING:
            self._set_state(VoiceState.IDLE, reason="shutdown")

    # ------------------------------------------------------------------
    # Recognizer events (single entry point)
    # ------------------------------------------------------------------

    async def handle_event(self, event: RecognitionEvent) -> None:
        if isinstance(event, RecognitionStarted):
            if self._session_started_ms is None:
                self._session_started_ms = self._clock_ms()

        elif isinstance(event, RecognitionResult):
            if not event.is_final:
                return
            self._session_had_result = True
            await self.on_utterance(event.text)

        elif isinstance(event, RecognitionEnded):
            await self._on_session_end()

        elif isinstance(event, RecognitionError):
            await self._on_error(event.error)

    async def on_utterance(self, text: str) -> VoiceCommand | None:
        """
        Classify a finalized utterance and run its command, if any.

        Returns the extracted command, or None if the utterance was ignored
        or held no command.
        """
        utterance = Utterance(text=normalize_utterance(text), ts_ms=self._clock_ms())
        if not utterance.text:
            return None

        wake = match_wake(utterance.text)
        if wake is not None:
            # Renewable: every trigger resets the full window
            self._awake_until_ms = utterance.ts_ms + self._awake_window_ms
            await self._emit_feedback({
                "type": "WAKE",
                "transcript": utterance.text,
                "awake_remaining_ms": self._awake_window_ms,
            })
        elif not self.is_awake():
            log_event({
                "event_type": "VOICE_UTTERANCE_IGNORED",
                "transcript": utterance.text,
            })
            return None

        command = parse_command(utterance.text)
        log_event({
            "event_type": "VOICE_UTTERANCE_CLASSIFIED",
            "transcript": utterance.text,
            "wake_pattern": wake,
            "relay_id": command.relay_id if command else None,
            "action": command.action.value if command else None,
        })
        if command is None:
            return None

        await self._emit_feedback({
            "type": "COMMAND",
            "message": command.describe(),
            "relay_id": command.relay_id,
            "action": command.action.value,
        })
        await self._on_command(command)
        return command

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def _start_session(self) -> None:
        self._session_started_ms = self._clock_ms()
        self._session_had_result = False
        await self._recognizer.start()

    async def _on_session_end(self) -> None:
        started = self._session_started_ms
        duration_ms = self._clock_ms() - started if started is not None else 0
        had_result = self._session_had_result
        self._session_started_ms = None
        self._session_had_result = False

        if not self._desired_listening:
            if self._state is VoiceState.LISTENING:
                self._set_state(VoiceState.IDLE, reason="session_ended")
            return

        if session_was_healthy(duration_ms=duration_ms, had_result=had_result):
            self._restart_attempt = reset_attempt()
        else:
            self._restart_attempt = next_attempt(self._restart_attempt)

        if not should_restart(self._restart_attempt):
            self._desired_listening = False
            self._set_state(VoiceState.IDLE, reason="restart_exhausted")
            await self._emit_feedback({
                "type": "ERROR",
                "message": "Voice control stopped after repeated failures",
            })
            return

        delay_ms = get_restart_delay_ms(self._restart_attempt)
        log_event({
            "event_type": "VOICE_RESTART_SCHEDULED",
            "attempt": self._restart_attempt.attempt,
            "delay_ms": delay_ms,
            "session_duration_ms": duration_ms,
        })
        self._cancel_restart()
        self._restart_task = asyncio.create_task(self._restart_after(delay_ms))

    async def _restart_after(self, delay_ms: int) -> None:
        await self._sleep(ms_to_seconds(delay_ms))
        if not self._desired_listening or self._state is not VoiceState.LISTENING:
            return
        try:
            await self._start_session()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._desired_listening = False
            self._set_state(VoiceState.IDLE, reason="restart_failed")
            log_event({
                "event_type": "VOICE_RESTART_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    async def _on_error(self, error: str) -> None:
        kind = classify_error(error)
        if kind is VoiceErrorKind.TRANSIENT:
            log_event({"event_type": "VOICE_ERROR_IGNORED", "error": error})
            return

        self._desired_listening = False
        self._cancel_restart()
        self._set_state(VoiceState.DENIED, reason=error)
        await self._emit_feedback({
            "type": "ERROR",
            "message": "Microphone access denied",
        })

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _cancel_restart(self) -> None:
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()

    def _set_state(self, state: VoiceState, *, reason: str) -> None:
        if state is self._state:
            return
        log_event({
            "event_type": "VOICE_STATE_CHANGED",
            "from_state": self._state.value,
            "to_state": state.value,
            "reason": reason,
        })
        self._state = state
