"""Custom exceptions for isoboot operations.

This module defines the error taxonomy used by every stage of the write
workflow so that each stage can decide whether a failure is re-promptable,
a warning, or fatal.

Exception Hierarchy:
    IsoBootError (base)
        ├── UserCancelled
        ├── ValidationRejected
        │   ├── DeviceValidationError
        │   └── ImageValidationError
        ├── PrivilegeDeniedError
        ├── ExternalToolError
        │   ├── DownloadError
        │   ├── UnmountFailedError
        │   ├── WriteError
        │   └── EjectError
        └── DependencyMissingError

Usage:
    from isoboot.storage.exceptions import DeviceValidationError

    try:
        candidate = validate_target("/dev/sdb")
    except DeviceValidationError as error:
        print(error.reason)
"""

from __future__ import annotations

from typing import Sequence

from isoboot.domain.models import DeviceRejectReason, ImageRejectReason


class IsoBootError(Exception):
    """Base exception for all isoboot errors."""


class UserCancelled(IsoBootError):
    """Operator typed 'exit' at a prompt."""

    def __init__(self, message: str = "Exiting..."):
        super().__init__(message)


class ValidationRejected(IsoBootError):
    """A candidate device or image failed validation."""


_DEVICE_MESSAGES = {
    DeviceRejectReason.NOT_A_BLOCK_DEVICE: (
        "Invalid disk format or device does not exist. "
        "Please enter /dev/sdX (e.g., /dev/sdb)."
    ),
    DeviceRejectReason.SYSTEM_DISK_PROTECTED: "Cannot use system disk as target.",
    DeviceRejectReason.DEVICE_MOUNTED: (
        "Target disk is mounted. Please unmount it first."
    ),
}

_IMAGE_MESSAGES = {
    ImageRejectReason.FILE_MISSING: "File does not exist",
    ImageRejectReason.WRONG_EXTENSION: "File does not have the expected extension",
}


class DeviceValidationError(ValidationRejected):
    """Target device was rejected by one of the safety gates."""

    def __init__(self, reason: DeviceRejectReason, path: str):
        self.reason = reason
        self.path = path
        super().__init__(_DEVICE_MESSAGES[reason])


class ImageValidationError(ValidationRejected):
    """Image file is missing, not a regular file, or has the wrong extension."""

    def __init__(self, reason: ImageRejectReason, path: str):
        self.reason = reason
        self.path = path
        super().__init__(f"{_IMAGE_MESSAGES[reason]}: {path}")


class PrivilegeDeniedError(IsoBootError):
    """Elevated privileges could not be obtained."""

    def __init__(self, message: str = "Failed to obtain sudo privileges"):
        super().__init__(message)


class ExternalToolError(IsoBootError):
    """An external utility reported failure."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] | None = None,
        returncode: int | None = None,
    ):
        self.command = list(command) if command else []
        self.returncode = returncode
        super().__init__(message)


class DownloadError(ExternalToolError):
    """Image download failed."""


class UnmountFailedError(ExternalToolError):
    """Unmounting a path failed."""


class WriteError(ExternalToolError):
    """Writing the image to the device failed."""


class EjectError(ExternalToolError):
    """Ejecting the device failed."""


class DependencyMissingError(IsoBootError):
    """One or more required external utilities are not installed."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required commands: {', '.join(self.missing)}")
