"""External command execution wrapped in typed results.

Every utility the workflow depends on goes through here so callers branch on
``CommandResult.ok`` rather than raw exit codes. Commands are always passed
as argument lists; nothing is ever handed to a shell.
"""

from __future__ import annotations

import subprocess
from typing import Sequence

from isoboot.domain.models import CommandResult
from isoboot.logging import LoggerFactory


log = LoggerFactory.for_system()


def run_command(
    command: Sequence[str],
    *,
    capture: bool = True,
    log_output: bool = True,
    log_command: bool = True,
) -> CommandResult:
    """Run a command and return its outcome without raising on failure.

    With ``capture=False`` the child inherits the terminal, which is how
    interactive tools such as ``sudo -v`` and ``wget --show-progress`` draw
    their own prompts and progress.
    """
    command = list(command)
    if log_command:
        log.debug(f"Running command: {' '.join(command)}")
    try:
        if capture:
            completed = subprocess.run(command, text=True, capture_output=True)
        else:
            completed = subprocess.run(command)
    except FileNotFoundError as error:
        log.debug(f"Command not found: {command[0]}")
        return CommandResult(command, 127, "", str(error))
    stdout = completed.stdout or ""
    stderr = completed.stderr or ""
    if stdout and (log_output or completed.returncode != 0):
        log.debug(f"stdout: {stdout.strip()}")
    if stderr and (log_output or completed.returncode != 0):
        log.debug(f"stderr: {stderr.strip()}")
    if log_command:
        log.debug(f"Command completed with return code {completed.returncode}")
    return CommandResult(command, completed.returncode, stdout, stderr)


def sync_filesystems() -> CommandResult:
    """Flush all buffered filesystem writes."""
    return run_command(["sync"])
