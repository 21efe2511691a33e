"""
Connection reconciler.

Responsibilities:
- Own the four RelayState objects and the ConnectivityStatus
- Poll the device on a timer, on settings change and on explicit triggers
- Apply optimistic relay flips and roll them back when dispatch fails
- Queue user-facing notices for command failures

Guarantees:
- All mutations happen on the event loop inside this class
- A superseded polling loop or confirmation timer is canceled before a
  replacement is armed
- A poll result is applied only if its cycle started after the last
  applied cycle and under the current settings

Status transitions:

    DEMO        pinned while demo_mode is set; no network I/O
    CONNECTING  -> CONNECTED   StatesKnown (relay states overwritten)
                -> RESTRICTED  ReachableOpaque (relay states kept)
                -> OFFLINE     Unreachable (relay states kept)
    OFFLINE     -> CONNECTING  at the start of the next poll cycle
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Protocol

from constants import (
    CONFIRMATION_POLL_DELAY_MS,
    DEMO_DISPLAY_TEXT_DELAY_MS,
    DISPLAY_TEXT_MAX_CHARS,
    POLL_INTERVAL_MS,
    ms_to_seconds,
)
from device.address import DeviceAddress, normalize_address
from device.errors import CommandDispatchError, InvalidAddressError
from device.probe import PollOutcome, ReachableOpaque, StatesKnown, Unreachable
from observability.logger import log_event
from reconciler.connectivity_status import ConnectivityStatus
from reconciler.notices import Notice, NoticeLevel, NoticeQueue
from reconciler.relay_state import RelayState, default_relays, is_valid_relay_id


TOGGLE_FAILED_MESSAGE = "Failed to toggle relay. Check connection."
DISPLAY_TEXT_FAILED_MESSAGE = "Failed to send message to LCD"


# ---------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------

class ProbeProtocol(Protocol):
    async def probe(self, address: DeviceAddress) -> PollOutcome: ...


class TransportProtocol(Protocol):
    async def toggle(self, address: DeviceAddress, relay_id: int) -> None: ...
    async def set_display_text(self, address: DeviceAddress, text: str) -> None: ...


@dataclass(frozen=True)
class DeviceSettings:
    """Current device configuration. Replaced wholesale, never mutated."""
    address: str
    demo_mode: bool


# ---------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------

class ConnectionReconciler:
    """Single writer of relay state and connectivity status."""

    def __init__(
        self,
        *,
        settings: DeviceSettings,
        probe: ProbeProtocol,
        transport: TransportProtocol,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        confirmation_delay_ms: int = CONFIRMATION_POLL_DELAY_MS,
        demo_display_delay_ms: int = DEMO_DISPLAY_TEXT_DELAY_MS,
    ) -> None:
        self._settings = settings
        self._probe = probe
        self._transport = transport

        self._poll_interval_s = ms_to_seconds(poll_interval_ms)
        self._confirmation_delay_s = ms_to_seconds(confirmation_delay_ms)
        self._demo_display_delay_s = ms_to_seconds(demo_display_delay_ms)

        self._relays: tuple[RelayState, ...] = default_relays()
        self._status = self._initial_status(settings)
        self._last_error: str | None = None
        self._notices = NoticeQueue()

        self._poll_task: asyncio.Task[None] | None = None
        self._confirm_task: asyncio.Task[None] | None = None

        # Stale-result gating
        self._settings_gen = 0
        self._poll_seq = 0
        self._applied_seq = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def settings(self) -> DeviceSettings:
        return self._settings

    @property
    def status(self) -> ConnectivityStatus:
        return self._status

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def relays(self) -> tuple[RelayState, ...]:
        """Copies of the relay states; mutating them has no effect."""
        return tuple(replace(r) for r in self._relays)

    def relay(self, relay_id: int) -> RelayState | None:
        if not is_valid_relay_id(relay_id):
            return None
        return replace(self._relays[relay_id])

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self._status.value,
            "accepts_commands": self._status.accepts_commands,
            "demo_mode": self._settings.demo_mode,
            "address": self._settings.address,
            "last_error": self._last_error,
            "relays": [r.as_dict() for r in self._relays],
        }

    def drain_notices(self) -> tuple[Notice, ...]:
        return self._notices.drain()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Arm the polling loop. The first poll runs immediately."""
        if self.running:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Cancel the polling loop and any pending confirmation poll."""
        await _cancel_task(self._poll_task)
        await _cancel_task(self._confirm_task)
        self._poll_task = None
        self._confirm_task = None

    async def update_settings(
        self,
        *,
        address: str | None = None,
        demo_mode: bool | None = None,
    ) -> DeviceSettings:
        """
        Replace device settings and restart polling under them.

        Old timers are torn down first so two loops never overlap.
        Results of polls started under the old settings are discarded.
        """
        new_settings = DeviceSettings(
            address=self._settings.address if address is None else address,
            demo_mode=self._settings.demo_mode if demo_mode is None else demo_mode,
        )

        was_running = self.running
        await self.stop()

        old_settings = self._settings
        self._settings = new_settings
        self._settings_gen += 1
        self._last_error = None
        self._set_status(self._initial_status(new_settings), reason="settings_changed")

        log_event({
            "event_type": "SETTINGS_UPDATED",
            "from_address": old_settings.address,
            "to_address": new_settings.address,
            "demo_mode": new_settings.demo_mode,
        })

        if was_running:
            await self.start()
        return new_settings

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> ConnectivityStatus:
        """Run one poll cycle and apply its outcome if still current."""
        settings = self._settings
        if settings.demo_mode:
            self._set_status(ConnectivityStatus.DEMO, reason="demo_mode")
            return self._status

        try:
            address = normalize_address(settings.address)
        except InvalidAddressError as exc:
            self._last_error = str(exc)
            self._set_status(ConnectivityStatus.OFFLINE, reason="invalid_address")
            return self._status

        gen = self._settings_gen
        self._poll_seq += 1
        seq = self._poll_seq

        if self._status is ConnectivityStatus.OFFLINE:
            self._set_status(ConnectivityStatus.CONNECTING, reason="retry")

        outcome = await self._probe.probe(address)

        if gen != self._settings_gen or seq <= self._applied_seq:
            log_event({
                "event_type": "POLL_RESULT_DISCARDED",
                "poll_seq": seq,
                "applied_seq": self._applied_seq,
                "stale_settings": gen != self._settings_gen,
            })
            return self._status

        self._applied_seq = seq
        self._apply_outcome(outcome)
        return self._status

    def _apply_outcome(self, outcome: PollOutcome) -> None:
        if isinstance(outcome, StatesKnown):
            for relay, is_on in zip(self._relays, outcome.states):
                relay.is_on = is_on
                relay.pending = False
            self._last_error = None
            self._set_status(ConnectivityStatus.CONNECTED, reason="states_known")

        elif isinstance(outcome, ReachableOpaque):
            # Local state is the only signal of truth left; keep it
            self._last_error = None
            self._set_status(ConnectivityStatus.RESTRICTED, reason="reachable_opaque")

        elif isinstance(outcome, Unreachable):
            self._last_error = str(outcome.cause)
            self._set_status(ConnectivityStatus.OFFLINE, reason="unreachable")

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "POLL_LOOP_ERROR",
                    "exception": type(exc).__name__,
                    "message": str(exc),
                })
            await asyncio.sleep(self._poll_interval_s)

    def _schedule_confirmation(self) -> None:
        if self._confirm_task is not None and not self._confirm_task.done():
            self._confirm_task.cancel()
        self._confirm_task = asyncio.create_task(self._confirmation_poll())

    async def _confirmation_poll(self) -> None:
        await asyncio.sleep(self._confirmation_delay_s)
        try:
            await self.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "CONFIRMATION_POLL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def request_toggle(self, relay_id: int) -> bool:
        """
        Flip a relay optimistically and send the toggle.

        Returns True if the flip stands, False if relay_id is out of range
        or the command could not be dispatched (flip reverted).
        """
        if not is_valid_relay_id(relay_id):
            log_event({"event_type": "TOGGLE_IGNORED", "relay_id": relay_id})
            return False

        relay = self._relays[relay_id]
        previous = relay.is_on
        relay.is_on = not previous

        settings = self._settings
        if settings.demo_mode:
            log_event({
                "event_type": "TOGGLE_APPLIED_DEMO",
                "relay_id": relay_id,
                "is_on": relay.is_on,
            })
            return True

        relay.pending = True
        try:
            address = _address_for_command(settings.address)
            await self._transport.toggle(address, relay_id)
        except CommandDispatchError as exc:
            relay.is_on = previous
            self._notices.push(NoticeLevel.ERROR, TOGGLE_FAILED_MESSAGE)
            log_event({
                "event_type": "TOGGLE_ROLLED_BACK",
                "relay_id": relay_id,
                "error": str(exc),
            })
            return False
        finally:
            relay.pending = False

        # Restricted: no readable confirmation exists; the flip is accepted
        if self._status is ConnectivityStatus.CONNECTED:
            self._schedule_confirmation()
        return True

    async def request_state(self, relay_id: int, on: bool) -> bool:
        """
        Drive a relay to a target state.

        Only toggles when the target differs from the current state.
        Returns True if a toggle was issued and stands.
        """
        if not is_valid_relay_id(relay_id):
            return False
        if self._relays[relay_id].is_on == on:
            return False
        return await self.request_toggle(relay_id)

    async def set_display_text(self, text: str) -> bool:
        """
        Send text to the device display.

        Blank text is a no-op. Text longer than the display is truncated.
        Returns True when the text was sent.
        """
        if not text.strip():
            return False
        text = text[:DISPLAY_TEXT_MAX_CHARS]

        if self._settings.demo_mode:
            await asyncio.sleep(self._demo_display_delay_s)
            log_event({"event_type": "DISPLAY_TEXT_APPLIED_DEMO", "chars": len(text)})
            return True

        try:
            address = _address_for_command(self._settings.address)
            await self._transport.set_display_text(address, text)
        except CommandDispatchError as exc:
            self._notices.push(NoticeLevel.ERROR, DISPLAY_TEXT_FAILED_MESSAGE)
            log_event({"event_type": "DISPLAY_TEXT_FAILED", "error": str(exc)})
            return False
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _initial_status(settings: DeviceSettings) -> ConnectivityStatus:
        if settings.demo_mode:
            return ConnectivityStatus.DEMO
        return ConnectivityStatus.CONNECTING

    def _set_status(self, status: ConnectivityStatus, *, reason: str) -> None:
        if status is self._status:
            return
        log_event({
            "event_type": "CONNECTIVITY_STATUS_CHANGED",
            "from_status": self._status.value,
            "to_status": status.value,
            "reason": reason,
            "last_error": self._last_error,
        })
        self._status = status


def _address_for_command(raw: str) -> DeviceAddress:
    try:
        return normalize_address(raw)
    except InvalidAddressError as exc:
        raise CommandDispatchError(str(exc)) from exc


async def _cancel_task(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
