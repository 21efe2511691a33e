"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Relays
# =============================================================================

RELAY_COUNT: Final[int] = 4

RELAY_DEFAULT_LABELS: Final[Tuple[str, ...]] = (
    "Living Room Light",
    "Bedroom Light",
    "Kitchen Light",
    "Bedroom Fan",
)

# =============================================================================
# Device HTTP surface
# =============================================================================

DEVICE_SCHEME: Final[str] = "http"
DEVICE_STATUS_PATH: Final[str] = "/"
DEVICE_TOGGLE_PATH: Final[str] = "/toggle"
DEVICE_DISPLAY_PATH: Final[str] = "/lcd"

DISPLAY_TEXT_MAX_CHARS: Final[int] = 32

NO_CACHE_HEADERS: Final[dict[str, str]] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# =============================================================================
# Connectivity probe
# =============================================================================

PROBE_READABLE_TIMEOUT_MS: Final[int] = 3_000
PROBE_OPAQUE_TIMEOUT_MS: Final[int] = 1_000

# =============================================================================
# Command transport
# =============================================================================

TOGGLE_GRACE_MS: Final[int] = 100
DISPLAY_TEXT_GRACE_MS: Final[int] = 200

# Upper bound for a background command request that is still running after
# the grace period returned control to the caller.
COMMAND_BACKGROUND_TIMEOUT_MS: Final[int] = 5_000

# =============================================================================
# Reconciler
# =============================================================================

POLL_INTERVAL_MS: Final[int] = 5_000
CONFIRMATION_POLL_DELAY_MS: Final[int] = 500
DEMO_DISPLAY_TEXT_DELAY_MS: Final[int] = 800
NOTICE_QUEUE_MAX: Final[int] = 50

# =============================================================================
# Voice
# =============================================================================

VOICE_AWAKE_WINDOW_MS: Final[int] = 10_000

# Automatic restart after the recognizer ends a session on its own.
VOICE_RESTART_DELAYS_MS: Final[Tuple[int, ...]] = (250, 500, 1_000, 2_000)
VOICE_RESTART_MAX_ATTEMPTS: Final[int] = 5

# A session shorter than this that produced no result counts as a quick
# failure for restart backoff.
VOICE_SESSION_HEALTHY_MS: Final[int] = 1_500

VOICE_PERMISSION_ERRORS: Final[frozenset[str]] = frozenset({
    "not-allowed",
    "service-not-allowed",
})

# =============================================================================
# Helper Functions
# =============================================================================

def ms_to_seconds(value_ms: int) -> float:
    """
    Convert milliseconds to seconds for asyncio APIs.

    Non-positive input returns 0.0.
    """
    if value_ms <= 0:
        return 0.0
    return value_ms / 1000.0
