"""Configuration loading for expresso."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

try:  # pragma: no cover - exercised on Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python 3.9/3.10
    import tomli as tomllib  # type: ignore[no-redef]

from expresso.manifest import default_manifest_name
from expresso.native.framing import DEFAULT_MAX_MESSAGE_BYTES
from expresso.xvpn.types import XVPNClientConfig

CONFIG_ENV_VAR = "EXPRESSO_CONFIG"
CONFIG_FILE_NAME = "config.toml"

DEFAULT_RESPONSE_TIMEOUT_MS = 500
DEFAULT_HANDSHAKE_TIMEOUT_MS = 1000
DEFAULT_CONNECT_TIMEOUT_MS = 10000
DEFAULT_DISCONNECT_TIMEOUT_MS = 10000
DEFAULT_DISPATCH_INTERVAL_MS = 20
DEFAULT_CONNECT_POLL_MS = 20
DEFAULT_DISCONNECT_POLL_MS = 200
DEFAULT_LOGS_ENABLED = False
DEFAULT_LOGS_MAX_FILE_BYTES = 1024 * 1024
DEFAULT_LOGS_MAX_FILES = 3


class ConfigError(RuntimeError):
    """Raised when the configuration file exists but cannot be used."""


def default_config_root() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base).expanduser() / "expresso"
    return Path.home() / ".config" / "expresso"


def resolve_config_path(explicit: Optional[Path] = None) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser()
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env).expanduser()
    return default_config_root() / CONFIG_FILE_NAME


@dataclass
class Settings:
    """Resolved settings for one CLI invocation."""

    config_path: Path
    manifest_name: str = field(default_factory=default_manifest_name)
    manifest_dirs: List[Path] = field(default_factory=list)
    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES
    response_timeout_ms: int = DEFAULT_RESPONSE_TIMEOUT_MS
    handshake_timeout_ms: int = DEFAULT_HANDSHAKE_TIMEOUT_MS
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    disconnect_timeout_ms: int = DEFAULT_DISCONNECT_TIMEOUT_MS
    dispatch_interval_ms: int = DEFAULT_DISPATCH_INTERVAL_MS
    connect_poll_ms: int = DEFAULT_CONNECT_POLL_MS
    disconnect_poll_ms: int = DEFAULT_DISCONNECT_POLL_MS
    logs_enabled: bool = DEFAULT_LOGS_ENABLED
    logs_dir: Path = field(default_factory=lambda: default_config_root() / "logs")
    logs_max_file_bytes: int = DEFAULT_LOGS_MAX_FILE_BYTES
    logs_max_files: int = DEFAULT_LOGS_MAX_FILES

    def client_config(self) -> XVPNClientConfig:
        return XVPNClientConfig(
            response_timeout=self.response_timeout_ms / 1000.0,
            handshake_timeout=self.handshake_timeout_ms / 1000.0,
            connect_timeout=self.connect_timeout_ms / 1000.0,
            disconnect_timeout=self.disconnect_timeout_ms / 1000.0,
            dispatch_interval=self.dispatch_interval_ms / 1000.0,
            connect_poll_interval=self.connect_poll_ms / 1000.0,
            disconnect_poll_interval=self.disconnect_poll_ms / 1000.0,
        )


def _safe_positive_int(value: object, default: int) -> int:
    try:
        converted = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if converted <= 0:
        return default
    return converted


def _safe_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _safe_path_list(value: object) -> List[Path]:
    if not isinstance(value, list):
        return []
    result: List[Path] = []
    for item in value:
        text = str(item or "").strip()
        if text:
            result.append(Path(text).expanduser())
    return result


def _table(data: Dict[str, object], key: str) -> Dict[str, object]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def parse_settings(data: Dict[str, object], config_path: Path) -> Settings:
    helper = _table(data, "helper")
    timeouts = _table(data, "timeouts")
    polling = _table(data, "polling")
    logs = _table(data, "logs")

    defaults = Settings(config_path=config_path)
    manifest_name = str(helper.get("manifest_name") or "").strip() or defaults.manifest_name
    logs_dir_raw = str(logs.get("dir") or "").strip()

    return Settings(
        config_path=config_path,
        manifest_name=manifest_name,
        manifest_dirs=_safe_path_list(helper.get("manifest_dirs")),
        max_message_bytes=_safe_positive_int(helper.get("max_message_bytes"), DEFAULT_MAX_MESSAGE_BYTES),
        response_timeout_ms=_safe_positive_int(timeouts.get("response_ms"), DEFAULT_RESPONSE_TIMEOUT_MS),
        handshake_timeout_ms=_safe_positive_int(timeouts.get("handshake_ms"), DEFAULT_HANDSHAKE_TIMEOUT_MS),
        connect_timeout_ms=_safe_positive_int(timeouts.get("connect_ms"), DEFAULT_CONNECT_TIMEOUT_MS),
        disconnect_timeout_ms=_safe_positive_int(
            timeouts.get("disconnect_ms"), DEFAULT_DISCONNECT_TIMEOUT_MS
        ),
        dispatch_interval_ms=_safe_positive_int(polling.get("dispatch_ms"), DEFAULT_DISPATCH_INTERVAL_MS),
        connect_poll_ms=_safe_positive_int(polling.get("connect_ms"), DEFAULT_CONNECT_POLL_MS),
        disconnect_poll_ms=_safe_positive_int(polling.get("disconnect_ms"), DEFAULT_DISCONNECT_POLL_MS),
        logs_enabled=_safe_bool(logs.get("enabled"), DEFAULT_LOGS_ENABLED),
        logs_dir=Path(logs_dir_raw).expanduser() if logs_dir_raw else defaults.logs_dir,
        logs_max_file_bytes=_safe_positive_int(logs.get("max_file_bytes"), DEFAULT_LOGS_MAX_FILE_BYTES),
        logs_max_files=_safe_positive_int(logs.get("max_files"), DEFAULT_LOGS_MAX_FILES),
    )


def load_settings(config_path: Optional[Path] = None) -> Settings:
    path = resolve_config_path(config_path)
    if not path.exists():
        return Settings(config_path=path)
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError("invalid config file {0}: {1}".format(path, exc)) from exc
    return parse_settings(data, path)


def render_settings(settings: Settings) -> str:
    dirs = ", ".join('"{0}"'.format(str(item).replace("\\", "\\\\")) for item in settings.manifest_dirs)
    lines = [
        "[helper]",
        'manifest_name = "{0}"'.format(settings.manifest_name),
        "manifest_dirs = [{0}]".format(dirs),
        "max_message_bytes = {0}".format(settings.max_message_bytes),
        "",
        "[timeouts]",
        "response_ms = {0}".format(settings.response_timeout_ms),
        "handshake_ms = {0}".format(settings.handshake_timeout_ms),
        "connect_ms = {0}".format(settings.connect_timeout_ms),
        "disconnect_ms = {0}".format(settings.disconnect_timeout_ms),
        "",
        "[polling]",
        "dispatch_ms = {0}".format(settings.dispatch_interval_ms),
        "connect_ms = {0}".format(settings.connect_poll_ms),
        "disconnect_ms = {0}".format(settings.disconnect_poll_ms),
        "",
        "[logs]",
        "enabled = {0}".format("true" if settings.logs_enabled else "false"),
        'dir = "{0}"'.format(str(settings.logs_dir).replace("\\", "\\\\")),
        "max_file_bytes = {0}".format(settings.logs_max_file_bytes),
        "max_files = {0}".format(settings.logs_max_files),
    ]
    return "\n".join(lines) + "\n"


def initialize_config(config_path: Optional[Path] = None, force: bool = False) -> Path:
    path = resolve_config_path(config_path)
    if path.exists() and not force:
        raise ConfigError("config file already exists: {0}".format(path))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_settings(Settings(config_path=path)), encoding="utf-8")
    except OSError as exc:
        raise ConfigError("failed to write config file {0}: {1}".format(path, exc)) from exc
    return path
