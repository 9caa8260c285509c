"""Shared exceptions for the helper transport and the XVPN client."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ExpressoError(RuntimeError):
    """Base error carrying optional structured details."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self._details: Dict[str, Any] = {}
        for key, value in details.items():
            if value is None:
                continue
            self._details[str(key)] = value

    @property
    def details(self) -> Dict[str, Any]:
        return dict(self._details)


def error_summary(exc: BaseException) -> str:
    detail = exc.details if isinstance(exc, ExpressoError) else {}
    ordered_keys = (
        "method",
        "state",
        "category",
        "exit_code",
        "path",
    )
    segments = [str(exc)]
    for key in ordered_keys:
        value = detail.get(key)
        if value in ("", None):
            continue
        segments.append("{0}={1}".format(key, value))
    return " | ".join(segments)


class ManifestError(ExpressoError):
    """Raised when the native messaging manifest is missing or unusable."""


class TransportError(ExpressoError):
    """Raised when the helper process cannot be started or written to."""


class FramingError(TransportError):
    """Raised when the helper violates the length-prefixed wire format."""


class HelperTimeout(TimeoutError):
    """Raised when a wait or a state poll exceeds its deadline."""

    def __init__(self, message: str, category: Optional[str] = None) -> None:
        super().__init__(message)
        self.category = category


class ConnectionFailed(ExpressoError):
    """Raised when a connect/disconnect workflow ends in an unexpected state."""

    def __init__(self, message: str, state: Any) -> None:
        super().__init__(message, state=getattr(state, "value", state))
        self.state = state


class PreconditionError(ExpressoError):
    """Raised locally, before any request is sent to the helper."""


class HelperNotConnectedError(PreconditionError):
    """Raised when the helper handshake has not completed yet."""


class NotConnectedError(PreconditionError):
    """Raised when a disconnect is requested while the VPN is not connected."""


class LocationsNotLoadedError(PreconditionError):
    """Raised when locations are looked up before they were ever loaded."""


class LocationNotFoundError(ExpressoError):
    """Raised when a location query matches nothing in the catalog."""
