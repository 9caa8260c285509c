from __future__ import annotations

import json
import queue
import stat
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from expresso.manifest import Manifest
from expresso.xvpn.client import ExpressVPNClient
from expresso.xvpn.types import XVPNClientConfig

Responder = Callable[[str, Dict[str, Any]], List[Dict[str, Any]]]


class FakeTransport:
    """In-memory stand-in for NativeMessagingTransport.

    ``responder`` maps each sent call to the messages the helper would answer
    with; they are queued exactly as the reader thread would queue them.
    """

    def __init__(self, responder: Optional[Responder] = None) -> None:
        self.responder = responder
        self.sent: List[Dict[str, Any]] = []
        self.raw_sent: List[str] = []
        self.fatal_error = None
        self.exit_code = None
        self.started = False
        self.closed = False
        self._inbox: "queue.Queue[str]" = queue.Queue()
        self._lock = threading.Lock()

    def start(self) -> None:
        self.started = True

    def close(self) -> None:
        self.closed = True

    def send(self, text: str) -> None:
        with self._lock:
            self.raw_sent.append(text)
            try:
                call = json.loads(text)
            except json.JSONDecodeError:
                return
            self.sent.append(call)
        if self.responder is None or not isinstance(call, dict):
            return
        for message in self.responder(str(call.get("method") or ""), dict(call.get("params") or {})):
            self.feed(message)

    def feed(self, message: Any) -> None:
        self._inbox.put(message if isinstance(message, str) else json.dumps(message))

    def try_receive(self) -> Optional[str]:
        try:
            return self._inbox.get_nowait()
        except queue.Empty:
            return None

    def methods(self) -> List[str]:
        return [str(call.get("method")) for call in self.sent]


def state_event(state: str) -> Dict[str, Any]:
    return {
        "name": "ServiceStateChanged",
        "data": {"ServiceStateChangedData": {"newstate": state}},
    }


def progress_event(value: float) -> Dict[str, Any]:
    return {
        "name": "ConnectionProgress",
        "data": {"ConnectionProgressData": {"progress": value}},
    }


def selected_event(location_id: str, name: str, is_country: bool = False, smart: bool = False) -> Dict[str, Any]:
    return {
        "name": "SelectedLocationChanged",
        "data": {
            "SelectedLocationChangedData": {
                "id": location_id,
                "name": name,
                "is_country": is_country,
                "is_smart_location": smart,
            }
        },
    }


def status_message(state: str, selected_name: str = "", current_name: str = "", current_id: str = "") -> Dict[str, Any]:
    return {
        "info": {
            "state": state,
            "current_location": {"id": current_id, "name": current_name},
            "selected_location": {
                "id": "",
                "name": selected_name,
                "is_country": False,
                "is_smart_location": False,
            },
            "last_location": {},
            "latest_version": "9.1.2",
        }
    }


def locations_message() -> Dict[str, Any]:
    return {
        "default_location": {"id": "loc-smart"},
        "locations": [
            {
                "id": "loc1",
                "name": "Germany - Frankfurt - 1",
                "country": "Germany",
                "country_code": "DE",
                "region": "Europe",
                "favorite": True,
                "sort_order": 3,
            },
            {
                "id": "loc2",
                "name": "Germany - Nuremberg",
                "country": "Germany",
                "country_code": "DE",
                "region": "Europe",
            },
            {
                "id": "loc-smart",
                "name": "Switzerland",
                "country": "Switzerland",
                "country_code": "CH",
                "region": "Europe",
                "recommended": True,
            },
            {
                "id": "loc3",
                "name": "USA - New York",
                "country": "United States",
                "country_code": "US",
                "region": "Americas",
            },
        ],
        "recent_locations_ids": ["loc3"],
        "recommended_location_ids": ["loc-smart"],
    }


FAST_CONFIG = XVPNClientConfig(
    response_timeout=0.5,
    handshake_timeout=0.5,
    connect_timeout=1.0,
    disconnect_timeout=1.0,
    dispatch_interval=0.005,
    connect_poll_interval=0.005,
    disconnect_poll_interval=0.01,
)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def client(fake_transport: FakeTransport):
    instance = ExpressVPNClient(fake_transport, config=FAST_CONFIG)
    instance.start()
    fake_transport.feed({"connected": True, "app_version": "9.1.2"})
    instance.wait_for_connection(timeout=2)
    yield instance
    instance.close()


HELPER_TEMPLATE = '''#!{python}
import json
import struct
import sys

MODE = {mode!r}

def send(obj):
    data = json.dumps(obj).encode("utf-8")
    sys.stdout.buffer.write(struct.pack("<I", len(data)) + data)
    sys.stdout.buffer.flush()

def read():
    header = sys.stdin.buffer.read(4)
    if len(header) < 4:
        return None
    (length,) = struct.unpack("<I", header)
    return json.loads(sys.stdin.buffer.read(length).decode("utf-8"))

with open({args_file!r}, "w") as fp:
    json.dump(sys.argv[1:], fp)

if MODE == "oversize":
    sys.stdout.buffer.write(struct.pack("<I", 5000) + b"x" * 16)
    sys.stdout.buffer.flush()
    sys.exit(0)
if MODE == "truncated":
    sys.stdout.buffer.write(struct.pack("<I", 100) + b"{{}}")
    sys.stdout.buffer.flush()
    sys.exit(0)
if MODE == "fail":
    sys.exit(3)

send({{"connected": True, "app_version": "9.1.2"}})
while True:
    message = read()
    if message is None:
        break
    if message.get("method") == "XVPN.GetStatus":
        send({{"info": {{"state": "ready", "selected_location": {{"name": "Germany"}}}}}})
    elif message.get("method") == "Echo":
        send({{"echo": message.get("params")}})
    elif message.get("method") == "Quit":
        break
'''


@pytest.fixture
def make_helper(tmp_path: Path):
    """Write an executable Python helper plus its manifest."""

    def _make(mode: str = "normal") -> Dict[str, Any]:
        args_file = tmp_path / "helper-args-{0}.json".format(mode)
        script = tmp_path / "helper-{0}.py".format(mode)
        script.write_text(
            HELPER_TEMPLATE.format(python=sys.executable, mode=mode, args_file=str(args_file)),
            encoding="utf-8",
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        manifest_path = tmp_path / "com.expressvpn.helper.json"
        manifest_path.write_text(
            json.dumps(
                {
                    "name": "com.expressvpn.helper",
                    "description": "test helper",
                    "path": str(script),
                    "type": "stdio",
                    "allowed_extensions": ["firefox-addon@expressvpn.com"],
                }
            ),
            encoding="utf-8",
        )
        manifest = Manifest(
            name="com.expressvpn.helper",
            description="test helper",
            path=script,
            type="stdio",
            allowed_extensions=["firefox-addon@expressvpn.com"],
            manifest_path=manifest_path,
        )
        return {"manifest": manifest, "args_file": args_file, "script": script}

    return _make
