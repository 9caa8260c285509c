"""Structured debug log writer with size-based rotation."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

LEVELS = ("debug", "info", "warn", "error")

_ERROR_SUFFIXES = (".failed", ".error", ".exited_error", ".timeout")
_WARN_SUFFIXES = (".unhandled", ".unknown")
_DEBUG_PREFIXES = ("transport.frame.", "dispatch.preferences.", "dispatch.messages.", "client.call.")


def now_ms() -> int:
    return int(time.time() * 1000)


def event_level(event_type: str) -> str:
    """Severity of an emitted event, derived from its dotted name."""
    if event_type.endswith(_ERROR_SUFFIXES):
        return "error"
    if event_type.endswith(_WARN_SUFFIXES):
        return "warn"
    if event_type.startswith(_DEBUG_PREFIXES):
        return "debug"
    return "info"


def event_component(event_type: str) -> str:
    return event_type.split(".", 1)[0] or "client"


class DebugLogWriter:
    """Best-effort JSONL debug log writer with rotation."""

    def __init__(
        self,
        *,
        logs_dir: Path,
        enabled: bool,
        max_file_bytes: int = 1024 * 1024,
        max_files: int = 3,
    ) -> None:
        self._logs_dir = Path(logs_dir)
        self._enabled = bool(enabled)
        self._max_file_bytes = max(1, int(max_file_bytes or 0))
        self._max_files = max(1, int(max_files or 0))
        self._write_errors = 0
        self._lock = threading.Lock()

    @property
    def active_log_file(self) -> Path:
        return self._logs_dir / "expresso.log.jsonl"

    def write_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.write_entry(
            level=event_level(event_type),
            component=event_component(event_type),
            event_type=event_type,
            message="event:{0}".format(event_type),
            data=payload,
        )

    def write_entry(
        self,
        *,
        level: str,
        component: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        event_type: Optional[str] = None,
        ts_ms: Optional[int] = None,
    ) -> None:
        if not self._enabled:
            return

        record = {
            "ts_ms": int(ts_ms if ts_ms is not None else now_ms()),
            "level": str(level or "info"),
            "component": str(component or "client"),
            "event_type": str(event_type or ""),
            "message": str(message or ""),
            "data": dict(data or {}),
        }

        with self._lock:
            try:
                line = json.dumps(
                    record,
                    ensure_ascii=True,
                    separators=(",", ":"),
                    default=str,
                )
                payload = (line + "\n").encode("utf-8")
                self._logs_dir.mkdir(parents=True, exist_ok=True)
                self._rotate_if_needed_locked(len(payload))
                with self.active_log_file.open("ab") as fp:
                    fp.write(payload)
            except OSError:
                self._write_errors += 1

    @property
    def write_errors(self) -> int:
        return self._write_errors

    def _rotate_if_needed_locked(self, incoming_size: int) -> None:
        current_size = 0
        if self.active_log_file.exists():
            current_size = int(self.active_log_file.stat().st_size)
        if current_size + int(incoming_size) <= self._max_file_bytes:
            return
        self._rotate_locked()

    def _rotate_locked(self) -> None:
        oldest = self._rotated_file(self._max_files)
        oldest.unlink(missing_ok=True)

        for index in range(self._max_files - 1, 0, -1):
            src = self._rotated_file(index)
            if src.exists():
                src.replace(self._rotated_file(index + 1))

        if self.active_log_file.exists():
            self.active_log_file.replace(self._rotated_file(1))

    def _rotated_file(self, index: int) -> Path:
        return Path("{0}.{1}".format(self.active_log_file, index))
