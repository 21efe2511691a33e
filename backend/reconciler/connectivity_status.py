"""
Connectivity status of the device as seen by the reconciler.

Transitions are owned exclusively by ConnectionReconciler.
"""
from enum import Enum

class ConnectivityStatus(str, Enum):
    """
    Device connectivity status.

    RESTRICTED means the device answered but its status page could not be
    read; local relay state stands in for device truth. It is a best-effort
    classification, not a certainty.
    """
    CONNECTING = "CONNECTING"  # No poll result yet under current settings
    CONNECTED = "CONNECTED"    # Status readable; relay states are device truth
    RESTRICTED = "RESTRICTED"  # Reachable, status unreadable
    OFFLINE = "OFFLINE"        # Unreachable
    DEMO = "DEMO"              # Demo mode; no network I/O

    @property
    def accepts_commands(self) -> bool:
        return self in (
            ConnectivityStatus.CONNECTED,
            ConnectivityStatus.RESTRICTED,
            ConnectivityStatus.DEMO,
        )
