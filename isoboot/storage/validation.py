"""Safety validation for the write target.

A candidate path becomes a DeviceCandidate only if it passes three gates,
checked in order with the first failure winning:

    1. matches the accepted device naming pattern and is a block special file
    2. is not the system disk
    3. is not a source in the live mount table

Validation never corrects input and never unmounts anything; the caller
re-prompts on rejection.

Example:
    from isoboot.storage.validation import validate_target

    try:
        candidate = validate_target("/dev/sdb")
    except DeviceValidationError as error:
        print(error)
"""

import os
import re
import stat
from typing import Optional

from isoboot.config.settings import DEFAULT_DEVICE_PATTERN, DEFAULT_SYSTEM_DISK
from isoboot.domain.models import DeviceCandidate, DeviceRejectReason
from isoboot.logging import LoggerFactory

from .exceptions import DeviceValidationError
from .mount import MountEntry, is_source_mounted


log = LoggerFactory.for_device()


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def validate_block_device(path: str, pattern: str = DEFAULT_DEVICE_PATTERN) -> None:
    """Raises DeviceValidationError(NOT_A_BLOCK_DEVICE) on a bad name or node."""
    if not re.match(pattern, path) or not is_block_device(path):
        raise DeviceValidationError(DeviceRejectReason.NOT_A_BLOCK_DEVICE, path)


def validate_not_system_disk(path: str, system_disk: str = DEFAULT_SYSTEM_DISK) -> None:
    if path == system_disk:
        raise DeviceValidationError(DeviceRejectReason.SYSTEM_DISK_PROTECTED, path)


def validate_device_unmounted(
    path: str, entries: Optional[list[MountEntry]] = None
) -> None:
    if is_source_mounted(path, entries):
        raise DeviceValidationError(DeviceRejectReason.DEVICE_MOUNTED, path)


def validate_target(
    candidate_path: str,
    *,
    system_disk: str = DEFAULT_SYSTEM_DISK,
    pattern: str = DEFAULT_DEVICE_PATTERN,
    mount_entries: Optional[list[MountEntry]] = None,
) -> DeviceCandidate:
    """Run every target gate and return the validated candidate.

    Args:
        candidate_path: Path typed by the operator (e.g., "/dev/sdb")
        system_disk: Device that must never be written
        pattern: Regular expression a target path must match
        mount_entries: Mount table to check against (read live when None)

    Raises:
        DeviceValidationError: With the reason of the first gate that failed
    """
    path = candidate_path.strip()
    try:
        validate_block_device(path, pattern)
        validate_not_system_disk(path, system_disk)
        validate_device_unmounted(path, mount_entries)
    except DeviceValidationError as error:
        log.info(f"Rejected target {path!r}: {error.reason.value}")
        raise
    log.info(f"Validated target {path}")
    return DeviceCandidate(path)
