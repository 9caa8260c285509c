"""Fan out client events to the debug log and to stderr notices."""

from __future__ import annotations

import sys
from typing import Any, Dict, Optional, TextIO

from expresso.kernel.debug_log import LEVELS, DebugLogWriter, event_level
from expresso.ui.render import describe_event, render_notice


def console_threshold(verbose: int, quiet: bool) -> str:
    if quiet:
        return "error"
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warn"


class Diagnostics:
    """Event sink shared by transport, dispatcher and client."""

    def __init__(
        self,
        writer: Optional[DebugLogWriter] = None,
        threshold: str = "warn",
        stream: Optional[TextIO] = None,
    ) -> None:
        self._writer = writer
        self._threshold = LEVELS.index(threshold) if threshold in LEVELS else LEVELS.index("warn")
        self._stream = stream
        self._log_failure_reported = False

    def __call__(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._writer is not None:
            self._writer.write_event(event_type, payload)
            if self._writer.write_errors and not self._log_failure_reported:
                self._log_failure_reported = True
                self._notify(
                    "warn",
                    "Debug log could not be written: {0}".format(self._writer.active_log_file),
                )

        level = event_level(event_type)
        self._notify(level, describe_event(event_type, payload))

    def _notify(self, level: str, text: str) -> None:
        if LEVELS.index(level) < self._threshold:
            return
        stream = self._stream or sys.stderr
        stream.write(render_notice(level, text) + "\n")
        stream.flush()
