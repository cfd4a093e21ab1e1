"""Settings storage for isoboot configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "ISOBOOT_SETTINGS_PATH",
        Path.home() / ".config" / "isoboot" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_SYSTEM_DISK = "/dev/sda"
DEFAULT_DEVICE_PATTERN = r"^/dev/sd[a-z]$"
DEFAULT_IMAGE_EXTENSION = ".iso"
DEFAULT_DOWNLOAD_DIR = "~/Downloads"
DEFAULT_BLOCK_SIZE = "4M"
DEFAULT_LOG_DIR = os.environ.get(
    "ISOBOOT_LOG_DIR", str(Path.home() / ".local" / "state" / "isoboot" / "logs")
)

DEFAULT_SETTINGS: dict[str, Any] = {
    "system_disk": DEFAULT_SYSTEM_DISK,
    "device_pattern": DEFAULT_DEVICE_PATTERN,
    "image_extension": DEFAULT_IMAGE_EXTENSION,
    "download_dir": DEFAULT_DOWNLOAD_DIR,
    "block_size": DEFAULT_BLOCK_SIZE,
    "log_dir": DEFAULT_LOG_DIR,
    "debug": False,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings() -> None:
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value
    save_settings()


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def debug_enabled() -> bool:
    """Debug logging is on via settings or ISOBOOT_DEBUG=1."""
    env_value = os.environ.get("ISOBOOT_DEBUG", "").strip().lower()
    return env_value in {"1", "true", "yes", "on"} or get_bool("debug")


@dataclass(frozen=True)
class IsoBootSettings:
    """Immutable snapshot of the settings a workflow run depends on."""

    system_disk: str = DEFAULT_SYSTEM_DISK
    device_pattern: str = DEFAULT_DEVICE_PATTERN
    image_extension: str = DEFAULT_IMAGE_EXTENSION
    download_dir: Path = Path(DEFAULT_DOWNLOAD_DIR).expanduser()
    block_size: str = DEFAULT_BLOCK_SIZE
    log_dir: Path = Path(DEFAULT_LOG_DIR).expanduser()
    debug: bool = False

    @classmethod
    def from_store(cls) -> IsoBootSettings:
        return cls(
            system_disk=str(get_setting("system_disk", DEFAULT_SYSTEM_DISK)),
            device_pattern=str(get_setting("device_pattern", DEFAULT_DEVICE_PATTERN)),
            image_extension=str(
                get_setting("image_extension", DEFAULT_IMAGE_EXTENSION)
            ),
            download_dir=Path(
                str(get_setting("download_dir", DEFAULT_DOWNLOAD_DIR))
            ).expanduser(),
            block_size=str(get_setting("block_size", DEFAULT_BLOCK_SIZE)),
            log_dir=Path(str(get_setting("log_dir", DEFAULT_LOG_DIR))).expanduser(),
            debug=debug_enabled(),
        )


load_settings()
