"""Presentation helpers for expresso CLI output."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, TextIO

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from expresso.xvpn.types import LocationCatalog, StatusInfo

_NOTICE_PREFIX = {
    "debug": "Debug",
    "info": "Info",
    "warn": "Warning",
    "error": "Error",
    "success": "Success",
}

_EVENT_TEXT = {
    "transport.helper.started": "Started helper: {command}",
    "transport.helper.exited": "Helper has exited with code {exit_code}",
    "transport.helper.exited_error": "Helper has exited with code {exit_code} ({stderr})",
    "transport.close.failed": "Helper did not exit after being killed (pid {pid})",
    "transport.framing.failed": "Helper violated the wire format: {error}",
    "transport.frame.sent": "-> {text}",
    "transport.frame.received": "<- {text}",
    "dispatch.protocol.error": "Helper reported an error: {error}",
    "dispatch.helper.connected": "Connected to ExpressVPN version {app_version}",
    "dispatch.state.changed": "State changed to {state}",
    "dispatch.state.unknown": "Unknown state in ServiceStateChanged: {newstate}",
    "dispatch.named.unhandled": "Unhandled named message: {name}",
    "dispatch.message.unhandled": "Unhandled message: {text}",
    "dispatch.message.failed": "Exception handling response: {error}",
    "client.manifest.loaded": "Manifest loaded for {name} with helper at: {helper}",
    "client.call.sent": "Calling {method}",
    "client.wait.timeout": "Timed out after {timeout}s waiting for {category} ({method})",
    "client.connect.progress": "Connecting... {progress:.2f}%",
    "client.connect.finished": "Finished connection with state: {state}",
    "client.disconnect.finished": "Disconnected successfully",
    "client.handler.failed": "Notification handler for {category} failed: {error}",
}


def render_notice(level: str, text: str) -> str:
    prefix = _NOTICE_PREFIX.get(level, "Info")
    return "{0}: {1}".format(prefix, text)


def describe_event(event_type: str, payload: Dict[str, Any]) -> str:
    template = _EVENT_TEXT.get(event_type)
    if template is None:
        return "{0} {1}".format(event_type, payload) if payload else event_type
    try:
        return template.format(**payload)
    except (KeyError, IndexError, ValueError):
        return "{0} {1}".format(event_type, payload)


def _is_tty(stream: TextIO, forced: Optional[bool]) -> bool:
    if forced is not None:
        return forced
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except (OSError, ValueError):
            return False
    return False


def status_lines(status: StatusInfo, app_version: str = "") -> List[str]:
    state = status.state.value if status.state is not None else "unknown"
    lines = ["state: {0}".format(state)]
    if status.current_location.name:
        lines.append(
            "current location: {0} ({1})".format(status.current_location.name, status.current_location.id)
        )
    selected = status.selected_location
    if selected.name:
        kind = "smart location" if selected.is_smart_location else ("country" if selected.is_country else "location")
        lines.append("selected location: {0} [{1}]".format(selected.name, kind))
    if app_version:
        lines.append("app version: {0}".format(app_version))
    if status.latest_version and status.latest_version != app_version:
        lines.append("latest version: {0}".format(status.latest_version))
    return lines


def render_status(
    status: StatusInfo,
    stream: TextIO,
    app_version: str = "",
    is_tty: Optional[bool] = None,
) -> None:
    lines = status_lines(status, app_version)
    if _is_tty(stream, is_tty):
        console = Console(file=stream, highlight=False, soft_wrap=True)
        border = "green" if status.state is not None and status.state.value == "connected" else "cyan"
        console.print(Panel(Text("\n".join(lines)), title="ExpressVPN", border_style=border, box=box.ROUNDED))
        return
    for line in lines:
        stream.write(line + "\n")
    stream.flush()


def location_listing(catalog: LocationCatalog) -> Iterable[str]:
    """Locations grouped by region, then country, as plain text lines."""
    last_region: Optional[str] = None
    last_country: Optional[str] = None
    ordered = sorted(catalog.locations, key=lambda loc: (loc.region, loc.country, loc.name))
    for location in ordered:
        if location.region != last_region:
            yield ""
            yield "--- {0} ---".format(location.region)
            last_region = location.region
            last_country = None
        if location.country != last_country:
            yield ""
            yield "{0} ({1})".format(location.country, location.country_code)
            last_country = location.country
        yield "- {0} ({1})".format(location.name, location.id)


def render_locations(catalog: LocationCatalog, stream: TextIO) -> None:
    for line in location_listing(catalog):
        stream.write(line + "\n")
    stream.flush()
