"""Domain models for ISO write sessions."""

from __future__ import annotations

from .models import (
    Answer,
    CommandResult,
    DeviceCandidate,
    DeviceRejectReason,
    ImageRejectReason,
    ImageSource,
    LocalPath,
    RemoteURL,
    Session,
    Stage,
    UnmountOutcome,
    is_url,
    parse_image_source,
)


__all__ = [
    "Answer",
    "CommandResult",
    "DeviceCandidate",
    "DeviceRejectReason",
    "ImageRejectReason",
    "ImageSource",
    "LocalPath",
    "RemoteURL",
    "Session",
    "Stage",
    "UnmountOutcome",
    "is_url",
    "parse_image_source",
]
