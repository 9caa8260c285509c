"""Native messaging transport over the helper's stdio."""

from __future__ import annotations

import queue
import subprocess
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from expresso.errors import FramingError, TransportError
from expresso.manifest import Manifest
from expresso.native.framing import DEFAULT_MAX_MESSAGE_BYTES, encode_envelope, read_envelope

TransportEventSink = Callable[[str, Dict[str, Any]], None]


class NativeMessagingTransport:
    """Spawns the helper once and exchanges length-prefixed JSON with it."""

    def __init__(
        self,
        manifest: Manifest,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
        event_sink: Optional[TransportEventSink] = None,
    ) -> None:
        self._manifest = manifest
        self._max_message_bytes = int(max_message_bytes)
        self._event_sink = event_sink

        self._process: Optional[subprocess.Popen[bytes]] = None
        self._inbox: "queue.Queue[str]" = queue.Queue()
        self._stderr_lines: Deque[str] = deque(maxlen=40)
        self._write_lock = threading.Lock()
        self._stdout_thread: Optional[threading.Thread] = None
        self._stderr_thread: Optional[threading.Thread] = None
        self._started = False
        self._finished = threading.Event()
        self._fatal_error: Optional[FramingError] = None
        self._exit_code: Optional[int] = None

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    @property
    def fatal_error(self) -> Optional[FramingError]:
        return self._fatal_error

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def is_running(self) -> bool:
        process = self._process
        return process is not None and process.poll() is None and not self._finished.is_set()

    def command(self) -> List[str]:
        return [
            str(self._manifest.path),
            str(self._manifest.manifest_path),
            self._manifest.extension_id,
        ]

    def start(self) -> None:
        if self._started:
            return
        self._started = True

        command = self.command()
        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except FileNotFoundError as exc:
            raise TransportError(
                "helper executable not found: {0}".format(command[0]), path=command[0]
            ) from exc
        except OSError as exc:
            raise TransportError("failed to start helper: {0}".format(exc), path=command[0]) from exc

        if self._process.stdin is None or self._process.stdout is None:
            self.close()
            raise TransportError("helper stdio streams unavailable")

        self._stdout_thread = threading.Thread(
            target=self._read_stdout_loop, name="expresso-reader", daemon=True
        )
        self._stdout_thread.start()
        if self._process.stderr is not None:
            self._stderr_thread = threading.Thread(
                target=self._read_stderr_loop, name="expresso-stderr", daemon=True
            )
            self._stderr_thread.start()
        self._emit("transport.helper.started", {"command": command, "pid": self._process.pid})

    def send(self, text: str) -> None:
        envelope = encode_envelope(text)
        with self._write_lock:
            process = self._process
            if process is None or process.stdin is None or not self.is_running:
                raise TransportError("helper is not running", exit_code=self._exit_code)
            self._emit("transport.frame.sent", {"text": text})
            try:
                process.stdin.write(envelope)
                process.stdin.flush()
            except BrokenPipeError as exc:
                raise TransportError(
                    "helper pipe is closed: {0}".format(self._stderr_preview())
                ) from exc
            except (OSError, ValueError) as exc:
                raise TransportError("failed to write to helper: {0}".format(exc)) from exc

    def try_receive(self) -> Optional[str]:
        try:
            return self._inbox.get_nowait()
        except queue.Empty:
            return None

    def wait_finished(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def close(self) -> None:
        process = self._process
        if process is None:
            return

        try:
            if process.stdin:
                process.stdin.close()
        except OSError:
            pass

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                process.kill()
                try:
                    process.wait(timeout=1)
                except subprocess.TimeoutExpired:
                    self._emit("transport.close.failed", {"pid": process.pid})

        if self._stdout_thread and self._stdout_thread.is_alive():
            self._stdout_thread.join(timeout=1)
        if self._stderr_thread and self._stderr_thread.is_alive():
            self._stderr_thread.join(timeout=1)
        for stream in (process.stdout, process.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError:
                pass
        self._emit("transport.closed", {})

    def _read_stdout_loop(self) -> None:
        process = self._process
        if process is None or process.stdout is None:
            return
        try:
            while True:
                text = read_envelope(process.stdout, self._max_message_bytes)
                if text is None:
                    break
                self._emit("transport.frame.received", {"text": text})
                self._inbox.put(text)
        except FramingError as exc:
            self._fatal_error = exc
            self._emit(
                "transport.framing.failed",
                {"error": str(exc), "stderr": self._stderr_preview()},
            )
            self._finished.set()
            return

        self._exit_code = process.wait()
        if self._exit_code != 0:
            self._emit(
                "transport.helper.exited_error",
                {"exit_code": self._exit_code, "stderr": self._stderr_preview()},
            )
        else:
            self._emit("transport.helper.exited", {"exit_code": self._exit_code})
        self._finished.set()

    def _read_stderr_loop(self) -> None:
        process = self._process
        if process is None or process.stderr is None:
            return
        for line in process.stderr:
            text = line.decode("utf-8", errors="replace").rstrip("\n")
            if text:
                self._stderr_lines.append(text)

    def _stderr_preview(self) -> str:
        if not self._stderr_lines:
            return "no stderr"
        return " | ".join(list(self._stderr_lines)[-3:])

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._event_sink is None:
            return
        self._event_sink(event_type, payload)
