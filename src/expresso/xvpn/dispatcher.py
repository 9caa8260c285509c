"""Classify helper messages and apply them to the shared client state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from expresso.xvpn import notifications as topics
from expresso.xvpn.notifications import NotificationHub
from expresso.xvpn.snapshot import apply_full_status, apply_selected_location, apply_state_change
from expresso.xvpn.types import LocationCatalog, StatusInfo

DispatchEventSink = Callable[[str, Dict[str, Any]], None]


@dataclass
class ClientState:
    """State written only by the dispatch thread.

    Each field is replaced wholesale so readers on other threads always see a
    complete value.
    """

    connected_to_helper: bool = False
    app_version: str = ""
    status: StatusInfo = field(default_factory=StatusInfo)
    catalog: Optional[LocationCatalog] = None


class MessageDispatcher:
    def __init__(
        self,
        state: ClientState,
        hub: NotificationHub,
        event_sink: Optional[DispatchEventSink] = None,
    ) -> None:
        self._state = state
        self._hub = hub
        self._event_sink = event_sink
        self._named_handlers: Dict[str, Callable[[Mapping[str, Any]], None]] = {
            "ServiceStateChanged": self._on_service_state_changed,
            "ConnectionProgress": self._on_connection_progress,
            "SelectedLocationChanged": self._on_selected_location_changed,
            "WaitForNetworkReady": self._ignore_named,
        }

    def dispatch(self, text: str) -> None:
        """Handle one message. Failures are reported, never raised."""
        try:
            self._dispatch(text)
        except Exception as exc:
            self._emit(
                "dispatch.message.failed",
                {"error": "{0}: {1}".format(type(exc).__name__, exc), "text": text[:240]},
            )

    def _dispatch(self, text: str) -> None:
        doc = json.loads(text)
        if not isinstance(doc, dict):
            raise ValueError("message must be a JSON object")

        if "error" in doc:
            # TODO: surface helper errors to pending waits instead of letting them time out.
            self._emit("dispatch.protocol.error", {"error": doc.get("error")})
        elif doc.get("connected"):
            self._on_connected(doc)
        elif "info" in doc:
            self._state.status = apply_full_status(self._state.status, doc["info"])
            self._hub.publish(topics.STATUS_CHANGED, self._state.status)
            self._hub.publish(topics.FULL_STATUS, self._state.status)
        elif "name" in doc:
            self._on_named(doc)
        elif "Preferences" in doc:
            self._emit("dispatch.preferences.received", {})
        elif "locations" in doc:
            self._state.catalog = LocationCatalog.from_payload(doc)
            self._hub.publish(topics.LOCATIONS_UPDATED, self._state.catalog)
        elif "messages" in doc:
            self._emit("dispatch.messages.received", {})
        elif "success" in doc:
            return
        else:
            self._emit("dispatch.message.unhandled", {"text": text})

    def _on_connected(self, doc: Mapping[str, Any]) -> None:
        first = not self._state.connected_to_helper
        self._state.app_version = str(doc.get("app_version") or "")
        self._state.connected_to_helper = True
        self._emit("dispatch.helper.connected", {"app_version": self._state.app_version})
        if first:
            self._hub.publish(topics.CONNECTED, self._state.app_version)

    def _on_named(self, doc: Mapping[str, Any]) -> None:
        name = str(doc.get("name") or "")
        handler = self._named_handlers.get(name)
        if handler is None:
            self._emit("dispatch.named.unhandled", {"name": name})
            return
        handler(self._named_data(doc, name))

    @staticmethod
    def _named_data(doc: Mapping[str, Any], name: str) -> Mapping[str, Any]:
        # Payloads arrive as {"data": {"<Name>Data": {...}}}.
        data = doc.get("data")
        if not isinstance(data, Mapping):
            return {}
        nested = data.get("{0}Data".format(name))
        if isinstance(nested, Mapping):
            return nested
        return {}

    def _on_service_state_changed(self, data: Mapping[str, Any]) -> None:
        updated = apply_state_change(self._state.status, data)
        if updated is None:
            self._emit("dispatch.state.unknown", {"newstate": data.get("newstate")})
            return
        self._state.status = updated
        self._emit("dispatch.state.changed", {"state": updated.state.value})
        self._hub.publish(topics.STATUS_CHANGED, updated)

    def _on_connection_progress(self, data: Mapping[str, Any]) -> None:
        if "progress" not in data:
            raise ValueError("ConnectionProgress without progress")
        self._hub.publish(topics.CONNECTION_PROGRESS, float(data["progress"]))

    def _on_selected_location_changed(self, data: Mapping[str, Any]) -> None:
        if not data:
            raise ValueError("SelectedLocationChanged without data")
        self._state.status = apply_selected_location(self._state.status, data)
        self._hub.publish(topics.STATUS_CHANGED, self._state.status)

    def _ignore_named(self, _data: Mapping[str, Any]) -> None:
        return

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._event_sink is None:
            return
        self._event_sink(event_type, payload)
