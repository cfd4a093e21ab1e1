"""Startup check for the external utilities isoboot drives."""

from __future__ import annotations

import shutil
from typing import Iterable

from .exceptions import DependencyMissingError
from .privileges import is_elevated


REQUIRED_COMMANDS = ("dd", "lsblk", "mount", "umount", "sync", "wget", "eject")


def find_missing(commands: Iterable[str]) -> list[str]:
    return [command for command in commands if shutil.which(command) is None]


def check_dependencies(commands: Iterable[str] = REQUIRED_COMMANDS) -> None:
    """Raise DependencyMissingError listing every absent command.

    sudo is only needed when not already running as root.
    """
    required = list(commands)
    if not is_elevated():
        required.append("sudo")
    missing = find_missing(required)
    if missing:
        raise DependencyMissingError(missing)
