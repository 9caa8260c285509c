"""Alfred script filter output."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from expresso.xvpn.types import Location, LocationCatalog, State, StatusInfo


def alfred_item(
    location: Location,
    status: StatusInfo,
    catalog: LocationCatalog,
    with_uid: bool = True,
) -> Dict[str, Any]:
    prefix = ""
    action = "connect {0}".format(location.id)

    connected_id = status.current_location.id if status.state is State.CONNECTED else ""
    if connected_id and location.id == connected_id:
        prefix = "\u26a1\ufe0f "
        action = "disconnect"
    else:
        if location.favorite:
            prefix += "\u2764\ufe0f"
        if location.id in catalog.recent_location_ids:
            prefix += "\U0001f559"
        if location.id == catalog.default_location_id:
            prefix += "\U0001f44d"
        if prefix:
            prefix += " "

    item: Dict[str, Any] = {
        "title": location.name,
        "subtitle": "{0}{1} - {2}".format(prefix, location.region, location.country),
        "arg": action,
        "icon": {"path": "./flags/{0}.png".format(location.country_code)},
        "valid": True,
        "match": "{0} {1} {2}".format(location.name, location.region, location.country_code),
    }
    if with_uid:
        item["uid"] = location.id
    return item


def alfred_items(status: StatusInfo, catalog: LocationCatalog, all_locations: bool = False) -> List[Dict[str, Any]]:
    if all_locations:
        return [alfred_item(loc, status, catalog) for loc in catalog.locations]

    items: List[Dict[str, Any]] = []
    current_id = ""
    if status.state is State.CONNECTED:
        current_id = status.current_location.id
        items.append(alfred_item(status.current_location, status, catalog, with_uid=False))

    for location in catalog.locations:
        if not location.favorite or location.id == current_id:
            continue
        items.append(alfred_item(location, status, catalog, with_uid=False))

    for location_id in catalog.recent_location_ids:
        location = catalog.get(location_id)
        if location is None or location.favorite or location.id == current_id:
            continue
        items.append(alfred_item(location, status, catalog, with_uid=False))

    default = catalog.get(catalog.default_location_id)
    if default is not None:
        items.append(alfred_item(default, status, catalog, with_uid=False))
    return items


def render_alfred(status: StatusInfo, catalog: LocationCatalog, all_locations: bool = False) -> str:
    return json.dumps(
        {"items": alfred_items(status, catalog, all_locations=all_locations)},
        ensure_ascii=False,
        indent=2,
    )
