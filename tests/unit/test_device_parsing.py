# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from device.address import DeviceAddress, normalize_address
from device.errors import InvalidAddressError
from device.status_parser import parse_relay_status


# ---------------------------------------------------------------------
# Status parser
# ---------------------------------------------------------------------

def test_missing_relays_default_off():
    assert parse_relay_status("Relay 1: ON Relay 3: OFF") == (True, False, False, False)


def test_full_firmware_page():
    page = (
        "<html><body>"
        "Relay 1: OFF <a href='/toggle?r=0'>Toggle</a><br>"
        "Relay 2: ON <a href='/toggle?r=1'>Toggle</a><br>"
        "Relay 3: ON <a href='/toggle?r=2'>Toggle</a><br>"
        "Relay 4: OFF <a href='/toggle?r=3'>Toggle</a><br>"
        "</body></html>"
    )
    assert parse_relay_status(page) == (False, True, True, False)


def test_case_insensitive():
    assert parse_relay_status("relay 2: on\nRELAY 4: On") == (False, True, False, True)


def test_empty_and_garbage_input():
    assert parse_relay_status("") == (False, False, False, False)
    assert parse_relay_status("Relay 9: ON Relay 0: ON") == (False, False, False, False)


def test_always_four_entries_and_deterministic():
    text = "Relay 4: ON"
    first = parse_relay_status(text)
    assert len(first) == 4
    assert first == parse_relay_status(text)


# ---------------------------------------------------------------------
# Address normalization
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "raw",
    [
        "192.168.1.50",
        "http://192.168.1.50",
        "https://192.168.1.50/",
        "  HTTPS://192.168.1.50//  ",
    ],
)
def test_normalize_forces_plain_http(raw: str):
    address = normalize_address(raw)
    assert address == DeviceAddress(host="192.168.1.50")
    assert address.base_url == "http://192.168.1.50"


def test_normalize_keeps_port():
    address = normalize_address("https://esp32.local:8080/")
    assert address.url("/toggle") == "http://esp32.local:8080/toggle"
    assert address.url("lcd") == "http://esp32.local:8080/lcd"


@pytest.mark.parametrize("raw", ["", "   ", "http://", "https:///", "bad host"])
def test_normalize_rejects_empty(raw: str):
    with pytest.raises(InvalidAddressError):
        normalize_address(raw)
