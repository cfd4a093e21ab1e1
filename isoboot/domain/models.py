"""Domain model for a single isoboot run.

Everything here is process-scoped: a Session is created when the workflow
starts, mutated by each stage, and discarded at exit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union
from urllib.parse import urlsplit


URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


# ==============================================================================
# Prompt / Validation Outcomes
# ==============================================================================


class Answer(Enum):
    """Yes/no prompt outcome. Typing exit raises UserCancelled instead."""

    YES = "yes"
    NO = "no"


class DeviceRejectReason(Enum):
    """Reasons a target device is rejected, in gate order."""

    NOT_A_BLOCK_DEVICE = "NotABlockDevice"
    SYSTEM_DISK_PROTECTED = "SystemDiskProtected"
    DEVICE_MOUNTED = "DeviceMounted"


class ImageRejectReason(Enum):
    FILE_MISSING = "FileMissing"
    WRONG_EXTENSION = "WrongExtension"


# ==============================================================================
# Workflow Stages
# ==============================================================================


class Stage(Enum):
    """Write workflow states, in the only order they may be entered."""

    START = 0
    SHOW_LAYOUT = 1
    UNMOUNT = 2
    SELECT_TARGET = 3
    SELECT_IMAGE = 4
    CONFIRM_WRITE = 5
    WRITE = 6
    SYNC = 7
    OFFER_EJECT = 8
    DONE = 9

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


# ==============================================================================
# Device Domain
# ==============================================================================


@dataclass(frozen=True)
class DeviceCandidate:
    """A block device path that passed every safety gate."""

    path: str  # e.g., "/dev/sdb"

    @property
    def name(self) -> str:
        """Kernel device name (e.g., sdb)."""
        return Path(self.path).name

    def __str__(self) -> str:
        return self.path


# ==============================================================================
# Image Source Domain
# ==============================================================================


@dataclass(frozen=True)
class LocalPath:
    raw: str


@dataclass(frozen=True)
class RemoteURL:
    url: str

    @property
    def filename(self) -> str:
        """Final path segment of the URL, without query or fragment."""
        path = urlsplit(self.url).path
        return path.rstrip("/").rsplit("/", 1)[-1] if path else ""


ImageSource = Union[LocalPath, RemoteURL]


def is_url(text: str) -> bool:
    return bool(URL_PATTERN.match(text))


def parse_image_source(text: str) -> ImageSource:
    """Classify operator input as a download URL or a local path."""
    if is_url(text):
        return RemoteURL(text)
    return LocalPath(text)


# ==============================================================================
# External Command Results
# ==============================================================================


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external utility invocation."""

    command: Sequence[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        """Best human-readable failure text from the command output."""
        return self.stderr.strip() or self.stdout.strip() or "Command failed"


@dataclass(frozen=True)
class UnmountOutcome:
    path: Optional[str] = None
    warning: Optional[str] = None

    @property
    def declined(self) -> bool:
        return self.path is None


# ==============================================================================
# Session
# ==============================================================================


@dataclass
class Session:
    """State of one run, threaded through every workflow stage.

    ``target_device`` and ``image_path`` are write-once and only ever set from
    values returned by the validators.
    """

    target_device: Optional[DeviceCandidate] = None
    image_path: Optional[Path] = None
    unmount_requested: bool = False
    confirmed: bool = False
    eject_requested: bool = False
    stage: Stage = Stage.START
    history: list[Stage] = field(default_factory=lambda: [Stage.START])

    def advance(self, stage: Stage) -> None:
        """Move to the next stage; skipping or going back is refused."""
        if stage.value != self.stage.value + 1:
            raise RuntimeError(
                f"Invalid stage transition {self.stage.name} -> {stage.name}"
            )
        self.stage = stage
        self.history.append(stage)

    def assign_target(self, candidate: DeviceCandidate) -> None:
        if self.target_device is not None:
            raise RuntimeError("Target device already assigned for this session")
        if not isinstance(candidate, DeviceCandidate):
            raise TypeError("Target device must be a validated DeviceCandidate")
        self.target_device = candidate

    def assign_image(self, image_path: Path) -> None:
        if self.image_path is not None:
            raise RuntimeError("Image path already assigned for this session")
        self.image_path = Path(image_path)
