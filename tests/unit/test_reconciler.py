# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any

import pytest

from device.address import DeviceAddress
from device.errors import CommandDispatchError, DeviceUnreachable
from device.probe import PollOutcome, ReachableOpaque, StatesKnown, Unreachable
from reconciler.connectivity_status import ConnectivityStatus
from reconciler.notices import NoticeLevel
from reconciler.reconciler import (
    TOGGLE_FAILED_MESSAGE,
    ConnectionReconciler,
    DeviceSettings,
)


LIVE = DeviceSettings(address="http://10.0.0.7/", demo_mode=False)
DEMO = DeviceSettings(address="10.0.0.7", demo_mode=True)


@pytest.fixture(autouse=True)
def _quiet(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("observability.logger._print", lambda line: None)


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeProbe:
    def __init__(self, *outcomes: PollOutcome) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[DeviceAddress] = []

    async def probe(self, address: DeviceAddress) -> PollOutcome:
        self.calls.append(address)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


class GatedProbe:
    """Each call blocks until released, so polls can overlap."""

    def __init__(self) -> None:
        self.pending: list[tuple[asyncio.Future[PollOutcome], DeviceAddress]] = []

    async def probe(self, address: DeviceAddress) -> PollOutcome:
        fut: asyncio.Future[PollOutcome] = asyncio.get_running_loop().create_future()
        self.pending.append((fut, address))
        return await fut


class FakeTransport:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.toggles: list[tuple[DeviceAddress, int]] = []
        self.texts: list[tuple[DeviceAddress, str]] = []

    async def toggle(self, address: DeviceAddress, relay_id: int) -> None:
        if self.fail:
            raise CommandDispatchError("cannot send")
        self.toggles.append((address, relay_id))

    async def set_display_text(self, address: DeviceAddress, text: str) -> None:
        if self.fail:
            raise CommandDispatchError("cannot send")
        self.texts.append((address, text))


def make(
    settings: DeviceSettings = LIVE,
    probe: Any = None,
    transport: FakeTransport | None = None,
    **kwargs: Any,
) -> tuple[ConnectionReconciler, Any, FakeTransport]:
    probe = probe or FakeProbe(StatesKnown(states=(False, False, False, False)))
    transport = transport or FakeTransport()
    reconciler = ConnectionReconciler(
        settings=settings,
        probe=probe,
        transport=transport,
        confirmation_delay_ms=kwargs.pop("confirmation_delay_ms", 0),
        demo_display_delay_ms=kwargs.pop("demo_display_delay_ms", 0),
        **kwargs,
    )
    return reconciler, probe, transport


def states(reconciler: ConnectionReconciler) -> list[bool]:
    return [r.is_on for r in reconciler.relays()]


# ---------------------------------------------------------------------
# Poll outcomes
# ---------------------------------------------------------------------

def test_initial_status():
    assert make()[0].status is ConnectivityStatus.CONNECTING
    assert make(DEMO)[0].status is ConnectivityStatus.DEMO
    assert [r.label for r in make()[0].relays()] == [
        "Living Room Light", "Bedroom Light", "Kitchen Light", "Bedroom Fan",
    ]


def test_states_known_overwrites_relays():
    reconciler, probe, _ = make(probe=FakeProbe(StatesKnown(states=(True, False, True, False))))

    status = asyncio.run(reconciler.poll_once())

    assert status is ConnectivityStatus.CONNECTED
    assert states(reconciler) == [True, False, True, False]
    assert probe.calls == [DeviceAddress(host="10.0.0.7")]


def test_restricted_and_offline_leave_relays_untouched():
    reconciler, _, _ = make(probe=FakeProbe(
        StatesKnown(states=(True, True, False, False)),
        ReachableOpaque(),
        Unreachable(cause=DeviceUnreachable("refused")),
    ), confirmation_delay_ms=60_000)

    async def main():
        await reconciler.poll_once()
        await reconciler.request_toggle(3)  # local-only truth: [T, T, F, T]
        before = states(reconciler)

        assert await reconciler.poll_once() is ConnectivityStatus.RESTRICTED
        assert states(reconciler) == before

        assert await reconciler.poll_once() is ConnectivityStatus.OFFLINE
        assert states(reconciler) == before
        assert reconciler.last_error == "refused"
        await reconciler.stop()

    asyncio.run(main())


def test_offline_goes_through_connecting_on_next_poll():
    seen: list[ConnectivityStatus] = []

    class RecordingProbe(FakeProbe):
        async def probe(self, address: DeviceAddress) -> PollOutcome:
            seen.append(reconciler.status)
            return await super().probe(address)

    probe = RecordingProbe(
        Unreachable(cause=DeviceUnreachable("refused")),
        StatesKnown(states=(False, True, False, False)),
    )
    reconciler, _, _ = make(probe=probe)

    async def main():
        await reconciler.poll_once()
        await reconciler.poll_once()

    asyncio.run(main())

    assert seen == [ConnectivityStatus.CONNECTING, ConnectivityStatus.CONNECTING]
    assert reconciler.status is ConnectivityStatus.CONNECTED
    assert reconciler.last_error is None


def test_invalid_address_is_offline_without_probe():
    reconciler, probe, _ = make(DeviceSettings(address="https://", demo_mode=False))

    assert asyncio.run(reconciler.poll_once()) is ConnectivityStatus.OFFLINE
    assert probe.calls == []
    assert reconciler.last_error is not None


def test_stale_out_of_order_result_is_discarded():
    probe = GatedProbe()
    reconciler, _, _ = make(probe=probe)

    async def main():
        older = asyncio.create_task(reconciler.poll_once())
        await asyncio.sleep(0)
        newer = asyncio.create_task(reconciler.poll_once())
        await asyncio.sleep(0)
        assert len(probe.pending) == 2

        # Newer completes first, then the older one arrives late
        probe.pending[1][0].set_result(StatesKnown(states=(True, True, True, True)))
        await newer
        probe.pending[0][0].set_result(StatesKnown(states=(False, False, False, False)))
        await older

    asyncio.run(main())

    assert states(reconciler) == [True, True, True, True]


def test_result_from_previous_settings_is_discarded():
    probe = GatedProbe()
    reconciler, _, _ = make(probe=probe)

    async def main():
        poll = asyncio.create_task(reconciler.poll_once())
        await asyncio.sleep(0)
        await reconciler.update_settings(address="10.0.0.8")
        probe.pending[0][0].set_result(StatesKnown(states=(True, True, True, True)))
        await poll

    asyncio.run(main())

    assert states(reconciler) == [False, False, False, False]
    assert reconciler.status is ConnectivityStatus.CONNECTING


# ---------------------------------------------------------------------
# Toggle
# ---------------------------------------------------------------------

def test_toggle_flips_and_schedules_confirmation_when_connected():
    reconciler, probe, transport = make(probe=FakeProbe(
        StatesKnown(states=(False, False, False, False)),
        StatesKnown(states=(True, False, False, False)),
    ))

    async def main():
        await reconciler.poll_once()
        assert await reconciler.request_toggle(0) is True
        assert states(reconciler)[0] is True
        assert reconciler.relay(0).pending is False
        await asyncio.sleep(0.05)  # let the confirmation poll run

    asyncio.run(main())

    assert transport.toggles == [(DeviceAddress(host="10.0.0.7"), 0)]
    assert len(probe.calls) == 2


def test_confirmation_poll_error_is_logged_not_leaked(monkeypatch: pytest.MonkeyPatch):
    lines: list[str] = []
    monkeypatch.setattr("observability.logger._print", lines.append)

    class BrokenAfterFirst(FakeProbe):
        async def probe(self, address: DeviceAddress) -> PollOutcome:
            if self.calls:
                self.calls.append(address)
                raise RuntimeError("parser blew up")
            return await super().probe(address)

    reconciler, probe, _ = make(probe=BrokenAfterFirst(StatesKnown(states=(False,) * 4)))

    async def main():
        await reconciler.poll_once()
        await reconciler.request_toggle(0)
        task = reconciler._confirm_task  # pylint: disable=protected-access
        assert task is not None
        await asyncio.sleep(0.05)
        assert task.done()
        assert task.exception() is None

    asyncio.run(main())

    assert len(probe.calls) == 2
    events = [json.loads(line) for line in lines]
    errors = [e for e in events if e["event_type"] == "CONFIRMATION_POLL_ERROR"]
    assert [(e["exception"], e["message"]) for e in errors] == [
        ("RuntimeError", "parser blew up"),
    ]
    assert states(reconciler)[0] is True


def test_toggle_skips_confirmation_when_restricted():
    reconciler, probe, _ = make(probe=FakeProbe(ReachableOpaque()))

    async def main():
        await reconciler.poll_once()
        await reconciler.request_toggle(1)
        await asyncio.sleep(0.05)

    asyncio.run(main())

    assert len(probe.calls) == 1
    assert states(reconciler) == [False, True, False, False]


def test_dispatch_failure_rolls_back_and_notifies():
    reconciler, _, _ = make(transport=FakeTransport(fail=True))

    async def main():
        await reconciler.poll_once()
        return await reconciler.request_toggle(2)

    assert asyncio.run(main()) is False
    assert states(reconciler) == [False, False, False, False]
    assert reconciler.relay(2).pending is False

    notices = reconciler.drain_notices()
    assert [(n.level, n.message) for n in notices] == [
        (NoticeLevel.ERROR, TOGGLE_FAILED_MESSAGE),
    ]
    assert reconciler.drain_notices() == ()


def test_malformed_address_at_toggle_rolls_back():
    reconciler, _, transport = make(DeviceSettings(address="   ", demo_mode=False))

    assert asyncio.run(reconciler.request_toggle(0)) is False
    assert states(reconciler)[0] is False
    assert transport.toggles == []
    assert len(reconciler.drain_notices()) == 1


@pytest.mark.parametrize("relay_id", [-1, 4, 99])
def test_out_of_range_toggle_is_noop(relay_id: int):
    reconciler, _, transport = make()

    assert asyncio.run(reconciler.request_toggle(relay_id)) is False
    assert states(reconciler) == [False, False, False, False]
    assert transport.toggles == []
    assert reconciler.drain_notices() == ()


def test_request_state_is_idempotent():
    reconciler, _, transport = make(probe=FakeProbe(ReachableOpaque()))

    async def main():
        await reconciler.poll_once()
        assert await reconciler.request_state(1, True) is True
        assert await reconciler.request_state(1, True) is False
        assert await reconciler.request_state(1, False) is True

    asyncio.run(main())

    assert [relay_id for _, relay_id in transport.toggles] == [1, 1]
    assert states(reconciler)[1] is False


# ---------------------------------------------------------------------
# Demo mode
# ---------------------------------------------------------------------

def test_demo_mode_never_touches_network():
    reconciler, probe, transport = make(DEMO)

    async def main():
        assert await reconciler.poll_once() is ConnectivityStatus.DEMO
        assert await reconciler.request_toggle(0) is True
        assert await reconciler.request_state(3, True) is True
        assert await reconciler.set_display_text("hello") is True
        await asyncio.sleep(0.05)

    asyncio.run(main())

    assert probe.calls == []
    assert transport.toggles == []
    assert transport.texts == []
    assert states(reconciler) == [True, False, False, True]


# ---------------------------------------------------------------------
# Display text
# ---------------------------------------------------------------------

def test_display_text_truncates_and_skips_blank():
    reconciler, _, transport = make()

    async def main():
        assert await reconciler.set_display_text("   ") is False
        assert await reconciler.set_display_text("x" * 40) is True

    asyncio.run(main())

    assert [text for _, text in transport.texts] == ["x" * 32]


def test_display_text_failure_notifies_without_touching_relays():
    reconciler, _, _ = make(transport=FakeTransport(fail=True))

    assert asyncio.run(reconciler.set_display_text("hi")) is False
    assert states(reconciler) == [False, False, False, False]
    assert len(reconciler.drain_notices()) == 1


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_polling_loop_polls_immediately_and_repeats():
    reconciler, probe, _ = make(poll_interval_ms=10)

    async def main():
        await reconciler.start()
        await asyncio.sleep(0.06)
        await reconciler.stop()

    asyncio.run(main())

    assert len(probe.calls) >= 2
    assert reconciler.running is False


def test_settings_change_replaces_loop():
    reconciler, probe, _ = make(poll_interval_ms=10_000)

    async def main():
        await reconciler.start()
        await asyncio.sleep(0)
        first_task = reconciler._poll_task  # pylint: disable=protected-access
        await reconciler.update_settings(address="10.0.0.9")
        await asyncio.sleep(0)
        assert first_task is not None and first_task.cancelled()
        assert reconciler.running
        await reconciler.stop()

    asyncio.run(main())

    assert probe.calls[-1] == DeviceAddress(host="10.0.0.9")
    assert reconciler.settings.address == "10.0.0.9"


def test_switching_to_demo_pins_status():
    reconciler, _, _ = make()

    async def main():
        await reconciler.poll_once()
        await reconciler.update_settings(demo_mode=True)

    asyncio.run(main())

    assert reconciler.status is ConnectivityStatus.DEMO
    snap = reconciler.snapshot()
    assert snap["demo_mode"] is True
    assert snap["accepts_commands"] is True
    assert len(snap["relays"]) == 4
