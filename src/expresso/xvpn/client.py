"""ExpressVPN helper client: dispatch loop, timed waits and VPN workflows."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, FrozenSet, Optional

from expresso.errors import (
    ConnectionFailed,
    HelperNotConnectedError,
    HelperTimeout,
    LocationsNotLoadedError,
    NotConnectedError,
    TransportError,
)
from expresso.native.transport import NativeMessagingTransport
from expresso.xvpn import notifications as topics
from expresso.xvpn.dispatcher import ClientState, MessageDispatcher
from expresso.xvpn.notifications import NotificationHub, Waiter
from expresso.xvpn.snapshot import is_connected
from expresso.xvpn.types import (
    ConnectArgs,
    Location,
    LocationCatalog,
    State,
    StatusInfo,
    XVPNClientConfig,
    build_call,
)

ClientEventSink = Callable[[str, Dict[str, Any]], None]
ProgressCallback = Callable[[float], None]

CONNECT_IN_PROGRESS: FrozenSet[State] = frozenset(
    {State.READY, State.CONNECTING, State.DISCONNECTING}
)
CONNECT_TIMEOUT_STATES: FrozenSet[State] = frozenset({State.READY, State.CONNECTING})
DISCONNECT_IN_PROGRESS: FrozenSet[State] = frozenset({State.CONNECTED, State.DISCONNECTING})

_WAIT_SLICE = 0.05


class ExpressVPNClient:
    """Talks to the ExpressVPN browser helper.

    Incoming messages are drained and dispatched on a single background
    thread. Public methods run on the caller's thread: they send requests,
    wait for the matching notification and poll the status snapshot.
    """

    def __init__(
        self,
        transport: NativeMessagingTransport,
        config: Optional[XVPNClientConfig] = None,
        event_sink: Optional[ClientEventSink] = None,
    ) -> None:
        self._transport = transport
        self._config = config or XVPNClientConfig()
        self._event_sink = event_sink
        self._state = ClientState()
        self.notifications = NotificationHub(on_handler_error=self._on_handler_error)
        self._dispatcher = MessageDispatcher(self._state, self.notifications, event_sink=self._emit)
        self._stop = threading.Event()
        self._dispatch_thread: Optional[threading.Thread] = None

    def __enter__(self) -> "ExpressVPNClient":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def config(self) -> XVPNClientConfig:
        return self._config

    @property
    def is_connected_to_helper(self) -> bool:
        return self._state.connected_to_helper

    @property
    def app_version(self) -> str:
        return self._state.app_version

    @property
    def latest_status(self) -> StatusInfo:
        return self._state.status

    @property
    def catalog(self) -> Optional[LocationCatalog]:
        return self._state.catalog

    def start(self) -> None:
        self._transport.start()
        if self._dispatch_thread is not None:
            return
        self._stop.clear()
        self._dispatch_thread = threading.Thread(
            target=self._dispatch_loop, name="expresso-dispatch", daemon=True
        )
        self._dispatch_thread.start()

    def close(self) -> None:
        self._stop.set()
        thread = self._dispatch_thread
        self._dispatch_thread = None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1)
        self._transport.close()

    def pump(self) -> int:
        """Dispatch every queued message now. Returns how many were handled."""
        count = 0
        while True:
            text = self._transport.try_receive()
            if text is None:
                return count
            self._dispatcher.dispatch(text)
            count += 1

    def _dispatch_loop(self) -> None:
        while not self._stop.wait(self._config.dispatch_interval):
            self.pump()

    # -------- calls and waits --------

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        self._emit("client.call.sent", {"method": method})
        self._transport.send(build_call(method, params))

    def call_raw(self, text: str) -> None:
        self._transport.send(text)

    def call_and_wait(
        self,
        method: str,
        params: Optional[Dict[str, Any]],
        category: str,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send a request and wait for the next notification of ``category``.

        The helper never answers with a request id, so the first notification
        of the category after subscribing is taken as the reply.
        """
        with Waiter(self.notifications, category) as waiter:
            self.call(method, params)
            self._await(waiter, self._resolve_timeout(timeout), method=method)
            return waiter.value

    def wait_for_connection(self, timeout: Optional[float] = None) -> str:
        if self.is_connected_to_helper:
            return self.app_version
        limit = self._config.handshake_timeout if timeout is None else timeout
        with Waiter(self.notifications, topics.CONNECTED) as waiter:
            if not self.is_connected_to_helper:
                self._await(waiter, limit, method="handshake")
        self._emit("client.helper.ready", {"app_version": self.app_version})
        return self.app_version

    def _await(self, waiter: Waiter, timeout: float, method: str) -> None:
        deadline = time.monotonic() + timeout
        while not waiter.wait(min(_WAIT_SLICE, max(0.0, deadline - time.monotonic()))):
            failure = self._transport_failure(method)
            if failure is not None:
                # Replies read before the helper went away may still be queued.
                if waiter.wait(self._drain_grace()):
                    return
                raise failure
            if time.monotonic() >= deadline:
                self._emit(
                    "client.wait.timeout",
                    {"method": method, "category": waiter.category, "timeout": timeout},
                )
                raise HelperTimeout(
                    "timed out waiting for the result of {0}".format(method),
                    category=waiter.category,
                )

    def _resolve_timeout(self, timeout: Optional[float]) -> float:
        if timeout is None:
            return self._config.response_timeout
        return timeout

    # -------- status and locations --------

    def refresh_status(self) -> StatusInfo:
        self._require_helper()
        self.call_and_wait("XVPN.GetStatus", {}, topics.FULL_STATUS)
        return self.latest_status

    def refresh_locations(self) -> LocationCatalog:
        self._require_helper()
        self.call_and_wait(
            "XVPN.GetLocations",
            {"include_default_location": True, "include_recent_connections": True},
            topics.LOCATIONS_UPDATED,
        )
        catalog = self.catalog
        if catalog is None:
            raise LocationsNotLoadedError("locations have not been loaded yet")
        return catalog

    def find_location(self, location_id: str) -> Optional[Location]:
        catalog = self.catalog
        if catalog is None:
            raise LocationsNotLoadedError("locations have not been loaded yet")
        return catalog.get(location_id)

    # -------- workflows --------

    def connect(
        self,
        args: ConnectArgs,
        timeout: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StatusInfo:
        self._require_helper()
        limit = self._config.connect_timeout if timeout is None else timeout

        if not is_connected(self.latest_status):
            # The browser helper only shows the right location after a select.
            selection = args.selection()
            if self.latest_status.selected_location.name != selection.name:
                self.call_and_wait(
                    "XVPN.SelectLocation",
                    {"selected_location": selection.as_params()},
                    topics.STATUS_CHANGED,
                )

        progress: Dict[str, float] = {}

        def _on_progress(value: Any) -> None:
            progress["value"] = float(value)

        failure: Optional[TransportError] = None
        self.notifications.subscribe(topics.CONNECTION_PROGRESS, _on_progress)
        try:
            self.call("XVPN.Connect", args.as_params())
            sticky = self.latest_status.state is State.CONNECTED
            start = time.monotonic()
            while time.monotonic() - start < limit:
                state = self.latest_status.state
                if sticky and state not in (State.CONNECTED, State.DISCONNECTING):
                    sticky = False
                if not (state in CONNECT_IN_PROGRESS or (sticky and state is State.CONNECTED)):
                    break
                time.sleep(self._config.connect_poll_interval)
                failure = self._transport_failure("XVPN.Connect")
                if failure is not None:
                    time.sleep(self._drain_grace())
                    break
                value = progress.pop("value", None)
                if value is not None:
                    self._emit("client.connect.progress", {"progress": value})
                    if on_progress is not None:
                        on_progress(value)
        finally:
            self.notifications.unsubscribe(topics.CONNECTION_PROGRESS, _on_progress)

        final = self.latest_status.state
        if final is State.CONNECTED:
            self._emit("client.connect.finished", {"state": final.value})
            return self.latest_status
        if failure is not None:
            raise failure
        if final in CONNECT_TIMEOUT_STATES:
            raise HelperTimeout("timed out waiting to connect", category=topics.STATUS_CHANGED)
        raise ConnectionFailed(
            "error while connecting, ended up in state '{0}'".format(_label(final)),
            state=final,
        )

    def disconnect(self, timeout: Optional[float] = None) -> StatusInfo:
        self._require_helper()
        if not is_connected(self.latest_status):
            raise NotConnectedError(
                "VPN is not connected", state=_label(self.latest_status.state)
            )
        limit = self._config.disconnect_timeout if timeout is None else timeout

        self.call("XVPN.Disconnect", {})
        failure: Optional[TransportError] = None
        start = time.monotonic()
        while (
            self.latest_status.state in DISCONNECT_IN_PROGRESS
            and time.monotonic() - start < limit
        ):
            time.sleep(self._config.disconnect_poll_interval)
            failure = self._transport_failure("XVPN.Disconnect")
            if failure is not None:
                time.sleep(self._drain_grace())
                break

        final = self.latest_status.state
        if final is State.READY:
            self._emit("client.disconnect.finished", {"state": final.value})
            return self.latest_status
        if failure is not None:
            raise failure
        if final in DISCONNECT_IN_PROGRESS:
            raise HelperTimeout("timed out waiting to disconnect", category=topics.STATUS_CHANGED)
        raise ConnectionFailed(
            "error while disconnecting, ended up in state '{0}'".format(_label(final)),
            state=final,
        )

    def _transport_failure(self, method: str) -> Optional[TransportError]:
        """Error to raise once the helper can no longer answer, else ``None``."""
        fatal = self._transport.fatal_error
        if fatal is not None:
            return TransportError(
                "helper transport failed during {0}: {1}".format(method, fatal),
                method=method,
            )
        exit_code = self._transport.exit_code
        if exit_code is not None:
            return TransportError(
                "helper exited during {0}".format(method),
                method=method,
                exit_code=exit_code,
            )
        return None

    def _drain_grace(self) -> float:
        return self._config.dispatch_interval * 3

    def _require_helper(self) -> None:
        if not self.is_connected_to_helper:
            raise HelperNotConnectedError("connection to helper has not been established")

    def _on_handler_error(self, category: str, exc: Exception) -> None:
        self._emit(
            "client.handler.failed",
            {"category": category, "error": "{0}: {1}".format(type(exc).__name__, exc)},
        )

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._event_sink is None:
            return
        self._event_sink(event_type, payload)


def _label(state: Optional[State]) -> str:
    if state is None:
        return "unknown"
    return state.value
