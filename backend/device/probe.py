"""
Two-tier connectivity probe.

Tier 1 (readable): GET "/" and read the body. Success yields the parsed
relay states.

Tier 2 (opaque): only after tier 1 fails. GET "/" without reading the
body and without judging the status code; success only proves the host
answers HTTP. This is the "reachable but unreadable" signal and is a
heuristic, not a certainty: a device that is up but slow to render its
page looks the same as one whose page cannot be read.

Each tier has its own bound; a timed-out request is canceled and counts
as that tier's failure. The probe never retries; the reconciler's polling
cadence is the retry.

Tier errors are absorbed here and folded into a three-way PollOutcome.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Union

import httpx

from constants import (
    DEVICE_STATUS_PATH,
    NO_CACHE_HEADERS,
    PROBE_OPAQUE_TIMEOUT_MS,
    PROBE_READABLE_TIMEOUT_MS,
    ms_to_seconds,
)
from device.address import DeviceAddress
from device.errors import (
    DeviceError,
    DeviceUnreachable,
    HttpStatusError,
    ProbeTimeout,
)
from device.status_parser import parse_relay_status
from observability.logger import log_event
from observability.metrics import timed


# =============================================================================
# Outcomes
# =============================================================================

@dataclass(frozen=True)
class StatesKnown:
    """Readable tier succeeded; states are device truth."""
    states: tuple[bool, ...]


@dataclass(frozen=True)
class ReachableOpaque:
    """Device answered, but its status could not be read."""


@dataclass(frozen=True)
class Unreachable:
    """Both tiers failed. cause is the readable-tier error."""
    cause: DeviceError


PollOutcome = Union[StatesKnown, ReachableOpaque, Unreachable]


@dataclass(frozen=True)
class TierResult:
    """Result of a single probe tier."""
    states: tuple[bool, ...] | None = None
    error: DeviceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Probe
# =============================================================================

class ConnectivityProbe:
    """Runs the readable tier, then the opaque tier, and merges the results."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def probe(self, address: DeviceAddress) -> PollOutcome:
        readable = await self.readable_tier(address)
        if readable.ok:
            assert readable.states is not None
            return StatesKnown(states=readable.states)

        opaque = await self.opaque_tier(address)
        if opaque.ok:
            return ReachableOpaque()

        assert readable.error is not None
        log_event({
            "event_type": "PROBE_UNREACHABLE",
            "address": address.host,
            "readable_error": str(readable.error),
            "opaque_error": str(opaque.error),
        })
        return Unreachable(cause=readable.error)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    async def readable_tier(self, address: DeviceAddress) -> TierResult:
        url = address.url(DEVICE_STATUS_PATH)

        async def _fetch() -> tuple[bool, ...]:
            response = await self._client.get(url, headers=NO_CACHE_HEADERS)
            if not response.is_success:
                raise HttpStatusError(response.status_code)
            return parse_relay_status(response.text)

        with timed("probe_readable", address=address.host) as details:
            try:
                states = await asyncio.wait_for(
                    _fetch(),
                    timeout=ms_to_seconds(PROBE_READABLE_TIMEOUT_MS),
                )
            except HttpStatusError as exc:
                details.update(outcome="http_status", status_code=exc.status_code)
                return TierResult(error=exc)
            except (asyncio.TimeoutError, httpx.TimeoutException):
                details["outcome"] = "timeout"
                return TierResult(
                    error=ProbeTimeout("readable", PROBE_READABLE_TIMEOUT_MS)
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                details["outcome"] = "unreachable"
                return TierResult(error=_unreachable(exc))
            details["outcome"] = "ok"

        return TierResult(states=states)

    async def opaque_tier(self, address: DeviceAddress) -> TierResult:
        url = address.url(DEVICE_STATUS_PATH)

        async def _touch() -> None:
            # Headers received is enough; the body is never read
            async with self._client.stream("GET", url, headers=NO_CACHE_HEADERS):
                pass

        with timed("probe_opaque", address=address.host) as details:
            try:
                await asyncio.wait_for(
                    _touch(),
                    timeout=ms_to_seconds(PROBE_OPAQUE_TIMEOUT_MS),
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                details["outcome"] = "timeout"
                return TierResult(
                    error=ProbeTimeout("opaque", PROBE_OPAQUE_TIMEOUT_MS)
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                details["outcome"] = "unreachable"
                return TierResult(error=_unreachable(exc))
            details["outcome"] = "ok"

        return TierResult()


def _unreachable(exc: Exception) -> DeviceUnreachable:
    return DeviceUnreachable(f"{type(exc).__name__}: {exc}")
