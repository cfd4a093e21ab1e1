"""Lazy privilege elevation.

Privileges are requested right before each privileged action (unmount,
write, eject), never at startup.
"""

from __future__ import annotations

import os
from typing import Callable, Sequence

from isoboot.logging import LoggerFactory

from .commands import run_command
from .exceptions import PrivilegeDeniedError


log = LoggerFactory.for_system()


def is_elevated() -> bool:
    return os.geteuid() == 0


def ensure_elevated(notify: Callable[[str], None] = print) -> None:
    """Make sure the next privileged command can run.

    Root needs nothing. Otherwise the sudo credential cache is refreshed
    with ``sudo -v``, which prompts for a password on the terminal if needed.

    Raises:
        PrivilegeDeniedError: If sudo refuses or is not available
    """
    if is_elevated():
        return
    notify("Requesting sudo privileges...")
    result = run_command(["sudo", "-v"], capture=False)
    if not result.ok:
        log.warning(f"sudo -v failed with exit code {result.returncode}")
        raise PrivilegeDeniedError()
    log.debug("sudo credentials refreshed")


def privileged(command: Sequence[str]) -> list[str]:
    """Prefix a command with sudo unless already running as root."""
    command = list(command)
    if is_elevated():
        return command
    return ["sudo", *command]
