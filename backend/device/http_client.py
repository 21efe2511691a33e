"""
Shared httpx client for device traffic.

One AsyncClient per process, created by the app lifespan and injected
into ConnectivityProbe and CommandTransport. Tests pass a client built on
httpx.MockTransport instead.
"""

from __future__ import annotations

import httpx

from constants import PROBE_READABLE_TIMEOUT_MS, ms_to_seconds


USER_AGENT = "relay-hub/0.1"


def build_device_client(
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """
    Create an AsyncClient with device defaults.

    - Redirects are never followed; the firmware answers commands with a
      303 back to "/" which would turn every command into a status read.
    - The per-request timeout is a backstop; probe tiers apply their own
      tighter bounds.
    """
    headers: dict[str, str] = {"User-Agent": USER_AGENT}
    if extra_headers:
        headers.update(extra_headers)

    return httpx.AsyncClient(
        timeout=httpx.Timeout(ms_to_seconds(PROBE_READABLE_TIMEOUT_MS)),
        follow_redirects=False,
        headers=headers,
        transport=transport,
    )
