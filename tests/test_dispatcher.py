from __future__ import annotations

import json

from conftest import locations_message, progress_event, selected_event, state_event, status_message

from expresso.xvpn import notifications as topics
from expresso.xvpn.dispatcher import ClientState, MessageDispatcher
from expresso.xvpn.notifications import NotificationHub
from expresso.xvpn.types import Location, SelectedLocation, State, StatusInfo


def _setup():
    state = ClientState()
    hub = NotificationHub()
    events = []
    seen = {category: [] for category in topics.CATEGORIES}
    for category in topics.CATEGORIES:
        hub.subscribe(category, seen[category].append)
    dispatcher = MessageDispatcher(
        state,
        hub,
        event_sink=lambda event_type, payload: events.append((event_type, payload)),
    )
    return state, dispatcher, seen, events


def _dispatch(dispatcher, message):
    dispatcher.dispatch(json.dumps(message))


def test_handshake_sets_version_and_notifies_once():
    state, dispatcher, seen, _events = _setup()

    _dispatch(dispatcher, {"connected": True, "app_version": "9.1.2"})
    _dispatch(dispatcher, {"connected": True, "app_version": "9.1.2"})

    assert state.connected_to_helper is True
    assert state.app_version == "9.1.2"
    assert seen[topics.CONNECTED] == ["9.1.2"]


def test_full_status_replaces_snapshot_and_raises_both_notifications():
    state, dispatcher, seen, _events = _setup()

    _dispatch(dispatcher, status_message("connected", selected_name="Germany", current_name="Germany - Frankfurt - 1"))

    assert state.status.state is State.CONNECTED
    assert state.status.current_location.name == "Germany - Frankfurt - 1"
    assert state.status.selected_location.name == "Germany"
    assert state.status.latest_version == "9.1.2"
    assert len(seen[topics.STATUS_CHANGED]) == 1
    assert len(seen[topics.FULL_STATUS]) == 1


def test_info_takes_priority_over_name():
    state, dispatcher, seen, _events = _setup()
    message = dict(state_event("connecting"))
    message.update(status_message("ready"))

    _dispatch(dispatcher, message)

    assert state.status.state is State.READY
    assert len(seen[topics.FULL_STATUS]) == 1


def test_error_takes_priority_and_changes_nothing():
    state, dispatcher, seen, events = _setup()
    message = {"error": {"code": -1, "message": "nope"}}
    message.update(status_message("connected"))

    _dispatch(dispatcher, message)

    assert state.status == StatusInfo()
    assert seen[topics.STATUS_CHANGED] == []
    assert events[0][0] == "dispatch.protocol.error"


def test_state_change_is_case_insensitive_and_only_touches_state():
    state, dispatcher, seen, _events = _setup()
    _dispatch(dispatcher, status_message("ready", selected_name="Germany", current_name="Nowhere"))

    _dispatch(dispatcher, state_event("CONNECTING"))

    assert state.status.state is State.CONNECTING
    assert state.status.selected_location.name == "Germany"
    assert state.status.current_location.name == "Nowhere"
    assert len(seen[topics.STATUS_CHANGED]) == 2


def test_unknown_state_label_is_logged_and_ignored():
    state, dispatcher, seen, events = _setup()
    _dispatch(dispatcher, status_message("ready"))

    _dispatch(dispatcher, state_event("bogus"))

    assert state.status.state is State.READY
    assert len(seen[topics.STATUS_CHANGED]) == 1
    assert ("dispatch.state.unknown", {"newstate": "bogus"}) in events


def test_selected_location_patch_leaves_other_fields():
    state, dispatcher, seen, _events = _setup()
    _dispatch(dispatcher, status_message("ready", selected_name="USA", current_name="Current"))

    _dispatch(dispatcher, selected_event("loc1", "Germany", is_country=True))

    assert state.status.selected_location == SelectedLocation(
        id="loc1", name="Germany", is_country=True, is_smart_location=False
    )
    assert state.status.state is State.READY
    assert state.status.current_location.name == "Current"
    assert len(seen[topics.STATUS_CHANGED]) == 2


def test_connection_progress_notifies_without_snapshot_change():
    state, dispatcher, seen, _events = _setup()
    before = state.status

    _dispatch(dispatcher, progress_event(42.5))

    assert seen[topics.CONNECTION_PROGRESS] == [42.5]
    assert state.status is before
    assert seen[topics.STATUS_CHANGED] == []


def test_locations_result_replaces_catalog():
    state, dispatcher, seen, _events = _setup()

    _dispatch(dispatcher, locations_message())

    catalog = state.catalog
    assert catalog is not None
    assert [loc.id for loc in catalog.locations] == ["loc1", "loc2", "loc-smart", "loc3"]
    assert catalog.default_location_id == "loc-smart"
    assert catalog.recent_location_ids == ["loc3"]
    assert catalog.recommended_location_ids == ["loc-smart"]
    assert catalog.get("loc1") == Location.from_payload(locations_message()["locations"][0])
    assert seen[topics.LOCATIONS_UPDATED] == [catalog]


def test_quiet_messages_are_ignored():
    state, dispatcher, seen, events = _setup()

    _dispatch(dispatcher, {"name": "WaitForNetworkReady", "data": {}})
    _dispatch(dispatcher, {"Preferences": {"x": 1}})
    _dispatch(dispatcher, {"messages": []})
    _dispatch(dispatcher, {"success": True})

    assert state.status == StatusInfo()
    assert all(not values for values in seen.values())
    assert [name for name, _ in events if name.endswith((".unhandled", ".failed"))] == []


def test_unhandled_messages_are_reported():
    _state, dispatcher, _seen, events = _setup()

    _dispatch(dispatcher, {"name": "SomethingNew", "data": {}})
    _dispatch(dispatcher, {"surprise": 1})

    names = [name for name, _ in events]
    assert "dispatch.named.unhandled" in names
    assert "dispatch.message.unhandled" in names


def test_malformed_messages_do_not_stop_dispatch():
    state, dispatcher, _seen, events = _setup()

    dispatcher.dispatch("{not json")
    dispatcher.dispatch("[1, 2]")
    _dispatch(dispatcher, {"locations": "nope"})
    _dispatch(dispatcher, {"name": "ConnectionProgress", "data": {}})
    _dispatch(dispatcher, state_event("connected"))

    failures = [name for name, _ in events if name == "dispatch.message.failed"]
    assert len(failures) == 4
    assert state.status.state is State.CONNECTED
