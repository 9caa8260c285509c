"""Native messaging manifest discovery and validation."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from expresso.errors import ManifestError

MANIFEST_EXTENSION = ".json"
SUPPORTED_TYPE = "stdio"

_MACOS_DIRS = (
    "~/Library/Application Support/Mozilla/NativeMessagingHosts",
    "/Library/Application Support/Mozilla/NativeMessagingHosts",
)
_LINUX_DIRS = (
    "/usr/lib/mozilla/native-messaging-hosts",
    "/usr/lib64/mozilla/native-messaging-hosts",
    "~/.mozilla/native-messaging-hosts",
)


@dataclass(frozen=True)
class Manifest:
    name: str
    path: Path
    type: str
    manifest_path: Path
    description: str = ""
    allowed_extensions: List[str] = field(default_factory=list)

    @property
    def extension_id(self) -> str:
        return self.allowed_extensions[0]


def default_manifest_name(platform: Optional[str] = None) -> str:
    current = platform or sys.platform
    if current.startswith("win"):
        return "com.expressvpn.helper.firefox"
    return "com.expressvpn.helper"


def _windows_dirs() -> List[str]:
    rows: List[str] = []
    for key in ("ProgramFiles(x86)", "ProgramFiles"):
        base = os.environ.get(key)
        if base:
            rows.append(str(Path(base) / "ExpressVPN" / "expressvpnd"))
    return rows


def manifest_search_dirs(platform: Optional[str] = None) -> List[Path]:
    current = platform or sys.platform
    if current == "darwin":
        raw = list(_MACOS_DIRS)
    elif current.startswith("linux"):
        raw = list(_LINUX_DIRS)
    elif current.startswith("win"):
        raw = _windows_dirs()
    else:
        # Unknown platform, try every known location.
        raw = list(_MACOS_DIRS) + list(_LINUX_DIRS) + _windows_dirs()
    return [Path(item).expanduser() for item in raw]


def find_manifest(
    name: str,
    extra_dirs: Sequence[Path] = (),
    platform: Optional[str] = None,
) -> Path:
    file_name = name + MANIFEST_EXTENSION
    for base in list(extra_dirs) + manifest_search_dirs(platform):
        candidate = Path(base).expanduser() / file_name
        if candidate.is_file():
            return candidate
    raise ManifestError("no manifest found with name: {0}".format(name), name=name)


def load_manifest(manifest_path: Path) -> Manifest:
    try:
        raw = json.loads(Path(manifest_path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ManifestError(
            "failed to read manifest: {0}".format(exc), path=str(manifest_path)
        ) from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(
            "invalid manifest json: {0}".format(exc), path=str(manifest_path)
        ) from exc
    if not isinstance(raw, dict):
        raise ManifestError("manifest root must be an object", path=str(manifest_path))

    kind = str(raw.get("type") or "").strip()
    if kind != SUPPORTED_TYPE:
        raise ManifestError(
            "unsupported native message type '{0}', only {1} is supported".format(kind, SUPPORTED_TYPE),
            path=str(manifest_path),
        )

    helper_path = str(raw.get("path") or "").strip()
    if not helper_path or not Path(helper_path).is_file():
        raise ManifestError(
            "helper specified in '{0}' does not exist: {1}".format(manifest_path, helper_path),
            path=str(manifest_path),
        )

    extensions = raw.get("allowed_extensions")
    if not isinstance(extensions, list) or not extensions:
        raise ManifestError("manifest lists no allowed extensions", path=str(manifest_path))

    return Manifest(
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        path=Path(helper_path),
        type=kind,
        allowed_extensions=[str(item) for item in extensions],
        manifest_path=Path(manifest_path),
    )


def resolve_manifest(
    name: str,
    extra_dirs: Sequence[Path] = (),
    platform: Optional[str] = None,
) -> Manifest:
    return load_manifest(find_manifest(name, extra_dirs=extra_dirs, platform=platform))
