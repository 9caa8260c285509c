"""Interactive raw-message session with the helper."""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Callable, Dict, Optional, TextIO

from expresso.errors import TransportError
from expresso.ui.render import render_notice

EventSink = Callable[[str, Dict[str, Any]], None]

REPL_HINTS = (
    '{"jsonrpc": "2.0", "method": "XVPN.GetStatus", "params": {}, "id": 1}',
    '{"jsonrpc": "2.0", "method": "XVPN.GetLocations", "params": {}, "id": 1}',
    '{"jsonrpc": "2.0", "method": "XVPN.Connect", "params": {"country": "Germany"}, "id": 1}',
    '{"jsonrpc": "2.0", "method": "XVPN.Disconnect", "params": {}, "id": 1}',
)


class FrameEcho:
    """Event sink printing every received helper message."""

    def __init__(self, stream: TextIO, downstream: Optional[EventSink] = None) -> None:
        self._stream = stream
        self._downstream = downstream
        self._lock = threading.Lock()

    def __call__(self, event_type: str, payload: Dict[str, Any]) -> None:
        if event_type == "transport.frame.received":
            with self._lock:
                self._stream.write("<- {0}\n".format(payload.get("text", "")))
                self._stream.flush()
        if self._downstream is not None:
            self._downstream(event_type, payload)


def run_repl(
    send: Callable[[str], None],
    stdin: Optional[TextIO] = None,
    stream: Optional[TextIO] = None,
    err_stream: Optional[TextIO] = None,
) -> int:
    """Forward one JSON message per input line until EOF."""
    stdin = stdin or sys.stdin
    stream = stream or sys.stdout
    err_stream = err_stream or sys.stderr
    if stdin.isatty():
        stream.write("Enter one JSON message per line, Ctrl-D to quit. Examples:\n")
        for hint in REPL_HINTS:
            stream.write("  {0}\n".format(hint))
        stream.flush()

    for line in stdin:
        text = line.strip()
        if not text:
            continue
        try:
            json.loads(text)
        except json.JSONDecodeError as exc:
            err_stream.write(render_notice("error", "not valid JSON: {0}".format(exc)) + "\n")
            err_stream.flush()
            continue
        try:
            send(text)
        except TransportError as exc:
            err_stream.write(render_notice("error", str(exc)) + "\n")
            err_stream.flush()
            return 1
    return 0
