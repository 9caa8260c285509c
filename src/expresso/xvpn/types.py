"""Typed XVPN payloads exchanged with the ExpressVPN helper."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

JSONRPC_VERSION = "2.0"
# The helper never echoes request ids, every call uses the same one.
CALL_ID = 1


@dataclass
class XVPNClientConfig:
    """Client timings, all in seconds."""

    response_timeout: float = 0.5
    handshake_timeout: float = 1.0
    connect_timeout: float = 10.0
    disconnect_timeout: float = 10.0
    dispatch_interval: float = 0.02
    connect_poll_interval: float = 0.02
    disconnect_poll_interval: float = 0.2


class State(str, Enum):
    ACTIVATED = "activated"
    READY = "ready"
    CONNECTING = "connecting"
    RECONNECTING = "reconnecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"
    INTERNAL_ERROR = "internal_error"
    NETWORK_ERROR = "network_error"
    FRAUDSTER = "fraudster"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    LICENSE_REVOKED = "license_revoked"
    ACTIVATION_ERROR = "activation_error"
    DUPLICATE_LICENSE_USED = "duplicate_license_used"
    CONNECTION_ERROR = "connection_error"
    NOT_ACTIVATED = "not_activated"


_STATE_LOOKUP: Dict[str, State] = {state.value: state for state in State}


def parse_state(label: Any) -> Optional[State]:
    """Map a helper state label to :class:`State`, ``None`` when unknown."""
    if not isinstance(label, str):
        return None
    return _STATE_LOOKUP.get(label.strip().lower())


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


@dataclass(frozen=True)
class SelectedLocation:
    id: Optional[str] = None
    name: Optional[str] = None
    is_country: bool = False
    is_smart_location: bool = False

    @classmethod
    def from_payload(cls, raw: Any) -> "SelectedLocation":
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            id=_text(raw.get("id")),
            name=_text(raw.get("name")),
            is_country=bool(raw.get("is_country")),
            is_smart_location=bool(raw.get("is_smart_location")),
        )

    def as_params(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Location:
    id: str = ""
    name: str = ""
    country: str = ""
    country_code: str = ""
    region: str = ""
    favorite: bool = False
    recommended: bool = False
    icon: str = ""
    protocols: Any = None
    sort_order: int = 0
    last_connected_time: Any = None
    update_time: Any = None

    @classmethod
    def from_payload(cls, raw: Any) -> "Location":
        if not isinstance(raw, Mapping):
            return cls()
        try:
            sort_order = int(raw.get("sort_order") or 0)
        except (TypeError, ValueError):
            sort_order = 0
        return cls(
            id=_text(raw.get("id")),
            name=_text(raw.get("name")),
            country=_text(raw.get("country")),
            country_code=_text(raw.get("country_code")),
            region=_text(raw.get("region")),
            favorite=bool(raw.get("favorite")),
            recommended=bool(raw.get("recommended")),
            icon=_text(raw.get("icon")),
            protocols=raw.get("protocols"),
            sort_order=sort_order,
            last_connected_time=raw.get("last_connected_time"),
            update_time=raw.get("update_time"),
        )


@dataclass(frozen=True)
class StatusInfo:
    """Latest known VPN status. ``state`` is ``None`` until first reported."""

    state: Optional[State] = None
    current_location: Location = field(default_factory=Location)
    selected_location: SelectedLocation = field(default_factory=SelectedLocation)
    last_location: Location = field(default_factory=Location)
    latest_version: str = ""
    latest_version_url: str = ""

    @classmethod
    def from_payload(cls, raw: Any) -> "StatusInfo":
        if not isinstance(raw, Mapping):
            raise ValueError("status info must be an object")
        return cls(
            state=parse_state(raw.get("state")),
            current_location=Location.from_payload(raw.get("current_location")),
            selected_location=SelectedLocation.from_payload(raw.get("selected_location")),
            last_location=Location.from_payload(raw.get("last_location")),
            latest_version=_text(raw.get("latest_version")),
            latest_version_url=_text(raw.get("latest_version_url")),
        )


@dataclass(frozen=True)
class LocationCatalog:
    locations: List[Location] = field(default_factory=list)
    default_location_id: str = ""
    recent_location_ids: List[str] = field(default_factory=list)
    recommended_location_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "LocationCatalog":
        rows = raw.get("locations")
        if not isinstance(rows, list):
            raise ValueError("locations must be an array")
        default = raw.get("default_location")
        default_id = _text(default.get("id")) if isinstance(default, Mapping) else ""
        return cls(
            locations=[Location.from_payload(row) for row in rows if isinstance(row, Mapping)],
            default_location_id=default_id,
            recent_location_ids=_text_list(raw.get("recent_locations_ids")),
            recommended_location_ids=_text_list(raw.get("recommended_location_ids")),
        )

    def get(self, location_id: str) -> Optional[Location]:
        for location in self.locations:
            if location.id == location_id:
                return location
        return None


@dataclass(frozen=True)
class ConnectArgs:
    """Arguments of XVPN.Connect. Unset text fields are sent as null."""

    country: Optional[str] = None
    name: Optional[str] = None
    id: Optional[str] = None
    is_default: bool = False
    change_connected_location: bool = False
    is_auto_connect: bool = False

    def selection(self) -> SelectedLocation:
        """Selection the helper should show for this connect request."""
        return SelectedLocation(
            id=self.id,
            name=self.country if self.country else self.name,
            is_country=bool(self.country),
            is_smart_location=self.is_default,
        )

    def as_params(self) -> Dict[str, Any]:
        return asdict(self)


def build_call(method: str, params: Optional[Dict[str, Any]] = None) -> str:
    return json.dumps(
        {
            "jsonrpc": JSONRPC_VERSION,
            "method": method,
            "params": params or {},
            "id": CALL_ID,
        },
        ensure_ascii=False,
    )
