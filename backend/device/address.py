"""
Device address normalization.

The appliance only serves plaintext HTTP. Users type either a bare host
("192.168.1.50"), a host with port, or a full URL with either scheme;
all of these normalize to the same DeviceAddress.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from constants import DEVICE_SCHEME
from device.errors import InvalidAddressError


_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


@dataclass(frozen=True)
class DeviceAddress:
    """Normalized device endpoint (host[:port], no scheme, no trailing slash)."""

    host: str

    @property
    def base_url(self) -> str:
        return f"{DEVICE_SCHEME}://{self.host}"

    def url(self, path: str) -> str:
        """Absolute URL for a device path such as "/toggle"."""
        if not path.startswith("/"):
            path = "/" + path
        return self.base_url + path

    def __str__(self) -> str:
        return self.base_url


def normalize_address(raw: str) -> DeviceAddress:
    """
    Strip a leading http:// or https:// and any trailing slashes.

    Raises:
        InvalidAddressError if nothing is left.
    """
    host = _SCHEME_RE.sub("", raw.strip()).rstrip("/")
    if not host or any(ch.isspace() for ch in host):
        raise InvalidAddressError(f"invalid device address: {raw!r}")
    return DeviceAddress(host=host)
