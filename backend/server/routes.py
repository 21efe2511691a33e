"""
Route registration for the relay hub API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the voice gateway to the WebSocket lifecycle
- Pull the reconciler from app.state
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from observability.logger import log_event
from reconciler.reconciler import ConnectionReconciler
from voice.gateway import VoiceGateway


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class RelayTargetBody(BaseModel):
    on: bool


class DisplayTextBody(BaseModel):
    text: str


class SettingsBody(BaseModel):
    address: str | None = None
    demo_mode: bool | None = None


def _reconciler(request: Request) -> ConnectionReconciler:
    return request.app.state.reconciler


def _state_payload(reconciler: ConnectionReconciler) -> dict[str, Any]:
    payload = reconciler.snapshot()
    payload["notices"] = [n.as_dict() for n in reconciler.drain_notices()]
    return payload


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/api/state")
    async def get_state(request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _state_payload(_reconciler(request))

    @app.post("/api/relays/{relay_id}/toggle")
    async def toggle_relay(relay_id: int, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reconciler = _reconciler(request)
        applied = await reconciler.request_toggle(relay_id)
        return {"applied": applied, **_state_payload(reconciler)}

    @app.put("/api/relays/{relay_id}")
    async def set_relay(relay_id: int, body: RelayTargetBody, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reconciler = _reconciler(request)
        applied = await reconciler.request_state(relay_id, body.on)
        return {"applied": applied, **_state_payload(reconciler)}

    @app.post("/api/display")
    async def set_display(body: DisplayTextBody, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reconciler = _reconciler(request)
        sent = await reconciler.set_display_text(body.text)
        return {"sent": sent, **_state_payload(reconciler)}

    @app.put("/api/settings")
    async def update_settings(body: SettingsBody, request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reconciler = _reconciler(request)
        await reconciler.update_settings(address=body.address, demo_mode=body.demo_mode)
        return _state_payload(reconciler)

    @app.post("/api/poll")
    async def poll(request: Request) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        reconciler = _reconciler(request)
        await reconciler.poll_once()
        return _state_payload(reconciler)

    @app.websocket("/ws/voice")
    async def voice_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        async def send_json(msg: dict[str, Any]) -> None:
            await ws.send_text(json.dumps(msg))

        gateway = VoiceGateway(
            reconciler=ws.app.state.reconciler,
            send_json=send_json,
        )

        try:
            await gateway.on_ws_connect()
            while True:
                text = await ws.receive_text()
                await gateway.on_json_message(text)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")
