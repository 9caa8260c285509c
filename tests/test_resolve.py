from __future__ import annotations

import pytest
from conftest import locations_message

from expresso.errors import LocationNotFoundError
from expresso.xvpn.resolve import resolve_connect_args
from expresso.xvpn.types import ConnectArgs, LocationCatalog


@pytest.fixture
def catalog() -> LocationCatalog:
    return LocationCatalog.from_payload(locations_message())


def test_empty_query_uses_default_location(catalog):
    args, description = resolve_connect_args(None, catalog)

    assert args == ConnectArgs(id="loc-smart", name="Switzerland", is_default=True)
    assert "Switzerland" in description
    assert args.selection().is_smart_location is True


def test_country_and_country_code(catalog):
    by_name, _ = resolve_connect_args("Germany", catalog)
    by_code, _ = resolve_connect_args("US", catalog)

    assert by_name == ConnectArgs(country="Germany")
    assert by_code == ConnectArgs(country="United States")
    assert by_name.selection().is_country is True


def test_id_match_beats_name_match():
    payload = locations_message()
    payload["locations"].insert(0, {"id": "x1", "name": "Relay loc3 backup", "country": "Iceland"})

    args, _ = resolve_connect_args("loc3", LocationCatalog.from_payload(payload))

    assert args == ConnectArgs(id="loc3", name="USA - New York")


def test_name_substring_is_case_insensitive(catalog):
    args, description = resolve_connect_args("nuremberg", catalog)

    assert args.id == "loc2"
    assert description == "location 'Germany - Nuremberg'"


def test_unknown_query_raises(catalog):
    with pytest.raises(LocationNotFoundError):
        resolve_connect_args("atlantis", catalog)


def test_missing_default_raises():
    payload = locations_message()
    payload["default_location"] = {"id": "gone"}

    with pytest.raises(LocationNotFoundError):
        resolve_connect_args("", LocationCatalog.from_payload(payload))
