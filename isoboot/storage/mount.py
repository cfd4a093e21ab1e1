"""Mount table queries and unmounting.

The live mount table comes from ``/proc/mounts``; where that is unavailable
the output of ``mount`` is parsed instead. A device counts as mounted when
the device itself or any of its partitions is a mount source.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from isoboot.domain.models import CommandResult
from isoboot.logging import LoggerFactory

from .commands import run_command
from .privileges import privileged


log = LoggerFactory.for_device()

PROC_MOUNTS = "/proc/mounts"

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


@dataclass(frozen=True)
class MountEntry:
    source: str
    mountpoint: str
    fstype: str = ""


def _unescape(field: str) -> str:
    # /proc/mounts encodes spaces, tabs and backslashes as \040 etc.
    return _OCTAL_ESCAPE.sub(lambda match: chr(int(match.group(1), 8)), field)


def parse_proc_mounts(text: str) -> list[MountEntry]:
    entries = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        fstype = parts[2] if len(parts) > 2 else ""
        entries.append(MountEntry(_unescape(parts[0]), _unescape(parts[1]), fstype))
    return entries


def parse_mount_output(text: str) -> list[MountEntry]:
    """Parse ``mount`` output lines such as ``/dev/sdb1 on /mnt/usb type vfat (rw)``."""
    entries = []
    for line in text.splitlines():
        match = re.match(r"^(\S+) on (.+?) type (\S+)", line)
        if match:
            entries.append(MountEntry(match.group(1), match.group(2), match.group(3)))
    return entries


def read_mount_table() -> list[MountEntry]:
    try:
        with open(PROC_MOUNTS, "r", encoding="utf-8") as mounts_file:
            return parse_proc_mounts(mounts_file.read())
    except FileNotFoundError:
        result = run_command(["mount"], log_output=False)
        if not result.ok:
            log.warning(f"Unable to read mount table: {result.message}")
            return []
        return parse_mount_output(result.stdout)


def _partition_pattern(device_path: str) -> re.Pattern:
    # sdb -> sdb1; nvme0n1 / mmcblk0 -> nvme0n1p1 / mmcblk0p1
    return re.compile(rf"^{re.escape(device_path)}(p?\d+)?$")


def is_source_mounted(
    device_path: str, entries: Optional[list[MountEntry]] = None
) -> bool:
    """True if the device or one of its partitions appears as a mount source."""
    if entries is None:
        entries = read_mount_table()
    pattern = _partition_pattern(device_path)
    return any(pattern.match(entry.source) for entry in entries)


def unmount_path(path: str) -> CommandResult:
    """Unmount a mountpoint or device node.

    ``--`` keeps a path that starts with a dash from being read as an option.
    """
    result = run_command(privileged(["umount", "--", path]))
    if result.ok:
        log.info(f"Unmounted {path}")
    else:
        log.warning(
            f"Failed to unmount {path} (exit code {result.returncode}): {result.message}"
        )
    return result
