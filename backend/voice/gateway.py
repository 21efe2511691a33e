"""
Voice gateway.

One gateway == one browser WebSocket == one VoiceCommandEngine.

Responsibilities:
- Create the engine and its BrowserRecognizer for the connection
- Route inbound JSON messages to engine events
- Forward engine commands to the shared ConnectionReconciler
- Push recognizer control, feedback and voice state to the browser

Not responsible for:
- Wake phrase, parsing or restart decisions (VoiceCommandEngine)
- Relay state (ConnectionReconciler)

Inbound messages (browser -> server):
    {"type": "TOGGLE_LISTENING"}
    {"type": "STARTED"}
    {"type": "RESULT", "text": "...", "is_final": true}
    {"type": "END"}
    {"type": "ERROR", "error": "not-allowed"}

Outbound messages (server -> browser):
    SESSION_INIT, VOICE_STATE, RECOGNIZER_START, RECOGNIZER_STOP,
    WAKE, COMMAND, ERROR, PROTOCOL_ERROR
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, TYPE_CHECKING
from uuid import uuid4

from observability.logger import log_event, now_ms
from voice.browser_recognizer import BrowserRecognizer
from voice.command_parser import VoiceCommand
from voice.engine import VoiceCommandEngine
from voice.recognizer import (
    RecognitionEnded,
    RecognitionError,
    RecognitionEvent,
    RecognitionEventType,
    RecognitionResult,
    RecognitionStarted,
)

if TYPE_CHECKING:
    from reconciler.reconciler import ConnectionReconciler


SendJson = Callable[[dict[str, Any]], Awaitable[None]]


def _new_session_id() -> str:
    return f"voice_{uuid4().hex[:12]}"


class VoiceGateway:
    """Bridges one browser connection to a voice engine and the reconciler."""

    def __init__(
        self,
        *,
        reconciler: ConnectionReconciler,
        send_json: SendJson,
        engine_factory: Callable[..., VoiceCommandEngine] = VoiceCommandEngine,
    ) -> None:
        self.session_id = _new_session_id()
        self._reconciler = reconciler
        self._send_json = send_json

        self.recognizer = BrowserRecognizer(send=self._send)
        self.engine = engine_factory(
            recognizer=self.recognizer,
            on_command=self._run_command,
            emit_feedback=self._send,
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> None:
        log_event({"event_type": "VOICE_WS_CONNECTED", "session_id": self.session_id})
        await self._send({
            "type": "SESSION_INIT",
            "session_id": self.session_id,
            "voice_state": self.engine.state.value,
        })

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        await self.engine.shutdown()
        log_event({
            "event_type": "VOICE_WS_DISCONNECTED",
            "session_id": self.session_id,
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, raw: str) -> None:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError as exc:
            await self._protocol_error(f"invalid json: {exc}")
            return
        if not isinstance(msg, dict):
            await self._protocol_error("message must be a JSON object")
            return

        before = self.engine.state
        msg_type = msg.get("type")

        if msg_type == "TOGGLE_LISTENING":
            await self.engine.toggle_listening()
        else:
            event = self._to_event(msg)
            if event is None:
                await self._protocol_error(f"unknown message type: {msg_type!r}")
                return
            if isinstance(event, RecognitionEnded):
                self.recognizer.mark_ended()
            await self.engine.handle_event(event)

        if self.engine.state is not before or msg_type == "TOGGLE_LISTENING":
            await self._send_voice_state()

    def _to_event(self, msg: dict[str, Any]) -> RecognitionEvent | None:
        msg_type = msg.get("type")
        ts_ms = now_ms()

        if msg_type == "STARTED":
            return RecognitionStarted(
                event_type=RecognitionEventType.STARTED,
                ts_ms=ts_ms,
            )
        if msg_type == "RESULT":
            return RecognitionResult(
                event_type=RecognitionEventType.RESULT,
                ts_ms=ts_ms,
                text=str(msg.get("text", "")),
                is_final=bool(msg.get("is_final", True)),
            )
        if msg_type == "END":
            return RecognitionEnded(
                event_type=RecognitionEventType.ENDED,
                ts_ms=ts_ms,
            )
        if msg_type == "ERROR":
            return RecognitionError(
                event_type=RecognitionEventType.ERROR,
                ts_ms=ts_ms,
                error=str(msg.get("error", "")),
            )
        return None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def _run_command(self, command: VoiceCommand) -> bool:
        return await self._reconciler.request_state(command.relay_id, command.target_on)

    async def _send_voice_state(self) -> None:
        session = self.engine.session()
        await self._send({
            "type": "VOICE_STATE",
            "state": session.state.value,
            "active": session.active,
            "awake_remaining_ms": session.awake_remaining_ms,
        })

    async def _protocol_error(self, message: str) -> None:
        log_event({
            "event_type": "VOICE_PROTOCOL_ERROR",
            "session_id": self.session_id,
            "message": message,
        })
        await self._send({"type": "PROTOCOL_ERROR", "message": message})

    async def _send(self, msg: dict[str, Any]) -> None:
        await self._send_json(msg)
