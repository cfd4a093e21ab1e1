"""Block device listing using lsblk.

The plain ``lsblk`` table is shown to the operator before they pick a target;
it is presentational only and never used to decide whether a device is safe.
The JSON form feeds the short device label used in the format confirmation.

Example:
    >>> for line in list_devices():
    ...     print(line)
    NAME   MAJ:MIN RM   SIZE RO TYPE MOUNTPOINTS
    sda      8:0    0 476.9G  0 disk
    sdb      8:16   1  14.9G  0 disk
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Iterator, Optional

from isoboot.logging import LoggerFactory

from .commands import run_command


log = LoggerFactory.for_device()

LSBLK_COLUMNS = "NAME,TYPE,SIZE,MODEL,VENDOR,TRAN,RM,MOUNTPOINT"


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def list_devices() -> Iterator[str]:
    """Yield the lines of the current block device layout."""
    result = run_command(["lsblk"], log_output=False)
    if not result.ok:
        log.warning(f"lsblk failed: {result.message}")
        yield f"(unable to list block devices: {result.message})"
        return
    for line in result.stdout.splitlines():
        yield line


def get_block_devices() -> list[dict]:
    """Return top-level block devices from ``lsblk -J -b``, or [] on failure."""
    result = run_command(
        ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS],
        log_output=False,
        log_command=False,
    )
    if not result.ok:
        log.debug(f"lsblk failed: {result.message}")
        return []
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as error:
        log.debug(f"lsblk returned invalid JSON: {error}")
        return []
    return data.get("blockdevices", []) or []


def get_device_by_name(name: str) -> Optional[dict]:
    if not name:
        return None
    for device in get_block_devices():
        if device.get("name") == name:
            return device
    return None


def format_device_label(device: dict) -> str:
    """Short label such as ``sdb 14.9GB SanDisk Cruzer``."""
    name = device.get("name") or ""
    size_label = re.sub(r"\.0([A-Z])", r"\1", human_size(device.get("size")))
    vendor_model = " ".join(
        part.strip()
        for part in (device.get("vendor"), device.get("model"))
        if part and part.strip()
    )
    return " ".join(part for part in (name, size_label, vendor_model) if part)


def describe_device(device_path: str) -> str:
    """Human-readable label for a device path, falling back to the path."""
    device = get_device_by_name(Path(device_path).name)
    if not device:
        return device_path
    return f"{device_path} ({format_device_label(device)})"
