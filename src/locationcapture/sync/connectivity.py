"""Network reachability types and the upload connection policy."""

from enum import Enum
from typing import Protocol


class NetworkType(str, Enum):
    """Kind of network the device is currently attached to."""

    NONE = "none"
    WIFI = "wifi"
    CELLULAR = "cellular"
    OTHER = "other"  # wired, VPN or anything else that is not metered cellular


class ConnectionType(str, Enum):
    """Which networks uploads are allowed to use."""

    WIFI_ONLY = "WIFI_ONLY"
    WIFI_CELLULAR = "WIFI+CELLULAR"
    ANY = "ANY"


class ConnectivityProbe(Protocol):
    """Reports the platform's current network attachment."""

    def current_network(self) -> NetworkType: ...


class StaticConnectivity:
    """Probe returning a fixed network type, changeable at runtime.

    Used by the CLI and by hosts that push reachability changes instead of
    being polled.
    """

    def __init__(self, network: NetworkType = NetworkType.OTHER) -> None:
        self.network = network

    def current_network(self) -> NetworkType:
        return self.network


def network_allows(connection_type: ConnectionType, network: NetworkType) -> bool:
    """Check whether uploads may use ``network`` under ``connection_type``."""
    if network == NetworkType.NONE:
        return False
    if connection_type == ConnectionType.WIFI_ONLY:
        return network == NetworkType.WIFI
    if connection_type == ConnectionType.WIFI_CELLULAR:
        return network in (NetworkType.WIFI, NetworkType.CELLULAR)
    return True
