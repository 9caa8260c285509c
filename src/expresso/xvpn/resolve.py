"""Turn a user location query into XVPN.Connect arguments."""

from __future__ import annotations

from typing import Optional, Tuple

from expresso.errors import LocationNotFoundError
from expresso.xvpn.types import ConnectArgs, Location, LocationCatalog


def resolve_connect_args(query: Optional[str], catalog: LocationCatalog) -> Tuple[ConnectArgs, str]:
    """Return connect arguments and a short description of the target.

    An empty query picks the default smart location. A country name or
    country code connects to the best location in that country. Otherwise an
    exact id match wins over a case-insensitive name match.
    """
    text = (query or "").strip()
    if not text:
        return _default_args(catalog)

    for location in catalog.locations:
        if text in (location.country, location.country_code):
            return (
                ConnectArgs(country=location.country),
                "best location in country '{0}'".format(location.country),
            )

    selected: Optional[Location] = None
    priority = 0
    needle = text.lower()
    for location in catalog.locations:
        if priority < 2 and text == location.id:
            selected = location
            priority = 2
        elif priority < 1 and needle in location.name.lower():
            selected = location
            priority = 1
    if selected is None:
        raise LocationNotFoundError("could not find a location for the query '{0}'".format(text))
    return (
        ConnectArgs(id=selected.id, name=selected.name),
        "location '{0}'".format(selected.name),
    )


def _default_args(catalog: LocationCatalog) -> Tuple[ConnectArgs, str]:
    if not catalog.default_location_id:
        raise LocationNotFoundError("no default location returned")
    default = catalog.get(catalog.default_location_id)
    if default is None:
        raise LocationNotFoundError(
            "default location with id {0} not found in locations list".format(
                catalog.default_location_id
            )
        )
    return (
        ConnectArgs(id=default.id, name=default.name, is_default=True),
        "default location '{0}'".format(default.name),
    )
