"""XVPN protocol client built on the native messaging transport."""

from .client import ExpressVPNClient
from .types import ConnectArgs, Location, LocationCatalog, State, StatusInfo, XVPNClientConfig

__all__ = [
    "ConnectArgs",
    "ExpressVPNClient",
    "Location",
    "LocationCatalog",
    "State",
    "StatusInfo",
    "XVPNClientConfig",
]
