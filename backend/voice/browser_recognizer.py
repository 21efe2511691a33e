"""
Recognizer backed by the browser's Web Speech API.

Speech recognition runs in the connected browser tab. This adapter only
tells the tab when to start and stop; the tab reports results, session
ends and errors back over the same WebSocket, where VoiceGateway turns
them into RecognitionEvents.

Control messages sent to the browser:
    {"type": "RECOGNIZER_START", "lang": "en-US", "continuous": true,
     "interim_results": false}
    {"type": "RECOGNIZER_STOP"}
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from observability.logger import log_event
from voice.recognizer import RecognizerAdapter


SendJson = Callable[[dict[str, Any]], Awaitable[None]]


class BrowserRecognizer(RecognizerAdapter):
    """Remote-controls recognition in the browser over a JSON channel."""

    def __init__(self, *, send: SendJson, lang: str = "en-US") -> None:
        self._send = send
        self._lang = lang
        self._running = False
        self.sessions_started = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        self.sessions_started += 1
        log_event({
            "event_type": "RECOGNIZER_START_SENT",
            "session_number": self.sessions_started,
        })
        await self._send({
            "type": "RECOGNIZER_START",
            "lang": self._lang,
            "continuous": True,
            "interim_results": False,
        })

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        await self._send({"type": "RECOGNIZER_STOP"})

    def mark_ended(self) -> None:
        """The browser reported the session ended."""
        self._running = False
