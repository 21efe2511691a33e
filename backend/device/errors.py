"""
Device error taxonomy.

Rules:
- Probe errors never escape ConnectivityProbe; they are carried inside
  the Unreachable outcome as a diagnostic.
- CommandDispatchError is the only command-path error callers see.
- "Reachable but unreadable" is NOT an error; it is the ReachableOpaque
  outcome (see device.probe).
"""

from __future__ import annotations


class DeviceError(Exception):
    """Base class for all device-side failures."""


class InvalidAddressError(DeviceError):
    """The configured device address is empty or unusable."""


class ProbeTimeout(DeviceError):
    """A probe tier did not complete within its bound."""

    def __init__(self, tier: str, timeout_ms: int) -> None:
        super().__init__(f"{tier} probe timed out after {timeout_ms} ms")
        self.tier = tier
        self.timeout_ms = timeout_ms


class DeviceUnreachable(DeviceError):
    """Connection-level failure (DNS, refused, reset)."""


class HttpStatusError(DeviceError):
    """The readable tier got a non-2xx response."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error! status: {status_code}")
        self.status_code = status_code


class CommandDispatchError(DeviceError):
    """A command request could not be sent at all."""
