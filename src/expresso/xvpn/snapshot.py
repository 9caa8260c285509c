"""Pure transformations from helper payloads to new status snapshots."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from expresso.xvpn.types import SelectedLocation, State, StatusInfo, parse_state


def apply_full_status(_previous: StatusInfo, info: Any) -> StatusInfo:
    return StatusInfo.from_payload(info)


def apply_state_change(previous: StatusInfo, data: Mapping[str, Any]) -> Optional[StatusInfo]:
    """Return a snapshot with the new state, or ``None`` for unknown labels."""
    state = parse_state(data.get("newstate"))
    if state is None:
        return None
    return replace(previous, state=state)


def apply_selected_location(previous: StatusInfo, data: Mapping[str, Any]) -> StatusInfo:
    return replace(previous, selected_location=SelectedLocation.from_payload(data))


def is_connected(snapshot: StatusInfo) -> bool:
    return snapshot.state is State.CONNECTED
