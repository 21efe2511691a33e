"""
Fire-and-forget command transport.

The firmware answers both commands with a redirect whose outcome cannot
be observed reliably, so a command counts as delivered once it has been
dispatched. "Device rejected it" and "reply was unreadable" are
indistinguishable here and are treated the same.

Each call returns after the earlier of:
- the request completing (with any status, or with a transport error)
- a fixed grace period

A request still running after the grace period keeps going in the
background, bounded by COMMAND_BACKGROUND_TIMEOUT_MS.

The only failure surfaced to callers is CommandDispatchError: the request
could not be built or sent at all.
"""

from __future__ import annotations

import asyncio
import time

import httpx

from constants import (
    COMMAND_BACKGROUND_TIMEOUT_MS,
    DEVICE_DISPLAY_PATH,
    DEVICE_TOGGLE_PATH,
    DISPLAY_TEXT_GRACE_MS,
    TOGGLE_GRACE_MS,
    ms_to_seconds,
)
from device.address import DeviceAddress
from device.errors import CommandDispatchError
from observability.logger import log_event


class CommandTransport:
    """Sends state-changing requests to the device without reading replies."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._inflight: set[asyncio.Task[None]] = set()
        self._last_token_ms = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def toggle(self, address: DeviceAddress, relay_id: int) -> None:
        """Send GET /toggle?r=<relay_id>&t=<token>."""
        token = self._next_token()
        request = self._build(
            "GET",
            address,
            DEVICE_TOGGLE_PATH,
            params={"r": str(relay_id), "t": str(token)},
        )
        log_event({
            "event_type": "COMMAND_TOGGLE_SENT",
            "address": address.host,
            "relay_id": relay_id,
            "token": token,
        })
        await self._dispatch(request, kind="toggle", grace_ms=TOGGLE_GRACE_MS)

    async def set_display_text(self, address: DeviceAddress, text: str) -> None:
        """Send POST /lcd with form field text."""
        request = self._build(
            "POST",
            address,
            DEVICE_DISPLAY_PATH,
            data={"text": text},
        )
        log_event({
            "event_type": "COMMAND_DISPLAY_TEXT_SENT",
            "address": address.host,
            "chars": len(text),
        })
        await self._dispatch(
            request,
            kind="display_text",
            grace_ms=DISPLAY_TEXT_GRACE_MS,
        )

    async def aclose(self) -> None:
        """Cancel background requests still in flight."""
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _next_token(self) -> int:
        """Cache-busting token: wall-clock ms, forced strictly increasing."""
        now = time.time_ns() // 1_000_000
        self._last_token_ms = max(now, self._last_token_ms + 1)
        return self._last_token_ms

    def _build(
        self,
        method: str,
        address: DeviceAddress,
        path: str,
        *,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Request:
        try:
            return self._client.build_request(
                method,
                address.url(path),
                params=params,
                data=data,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError) as exc:
            raise CommandDispatchError(
                f"cannot build {method} {path} for {address.host!r}: {exc}"
            ) from exc

    async def _dispatch(
        self,
        request: httpx.Request,
        *,
        kind: str,
        grace_ms: int,
    ) -> None:
        task = asyncio.create_task(self._send(request, kind=kind))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        # Returning early never cancels the request itself
        await asyncio.wait({task}, timeout=ms_to_seconds(grace_ms))

    async def _send(self, request: httpx.Request, *, kind: str) -> None:
        try:
            response = await asyncio.wait_for(
                self._client.send(request, stream=True),
                timeout=ms_to_seconds(COMMAND_BACKGROUND_TIMEOUT_MS),
            )
            await response.aclose()
            log_event({
                "event_type": "COMMAND_COMPLETED",
                "kind": kind,
                "status_code": response.status_code,
            })
        except asyncio.CancelledError:
            raise
        except (asyncio.TimeoutError, httpx.HTTPError) as exc:
            # Packet most likely reached the device anyway
            log_event({
                "event_type": "COMMAND_TRANSPORT_ERROR_IGNORED",
                "kind": kind,
                "error": f"{type(exc).__name__}: {exc}",
            })
