"""Raw image writing and device ejection.

The image is copied block-for-block with dd. ``conv=fdatasync`` makes dd
flush the device before it reports success; the workflow still runs a
separate ``sync`` afterwards.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from isoboot.config.settings import DEFAULT_BLOCK_SIZE
from isoboot.domain.models import DeviceCandidate
from isoboot.logging import LoggerFactory, operation_context

from .commands import run_command
from .exceptions import EjectError, WriteError
from .privileges import privileged
from .progress import ProgressCallback, ProgressTracker, run_with_progress


log = LoggerFactory.for_write()


def build_dd_command(
    image_path: Path, device: DeviceCandidate, block_size: str = DEFAULT_BLOCK_SIZE
) -> list[str]:
    return privileged(
        [
            "dd",
            f"bs={block_size}",
            f"if={image_path}",
            f"of={device.path}",
            "status=progress",
            "conv=fdatasync",
        ]
    )


def write_image(
    image_path: Path,
    device: DeviceCandidate,
    *,
    block_size: str = DEFAULT_BLOCK_SIZE,
    progress_callback: Optional[ProgressCallback] = None,
) -> None:
    """Copy the whole image onto the device.

    No partial-write recovery is attempted; on failure the device contents
    are undefined.

    Raises:
        WriteError: If the image is gone or dd exits non-zero
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise WriteError(f"ISO file not found: {image_path}")
    total_bytes = image_path.stat().st_size
    command = build_dd_command(image_path, device, block_size)
    tracker = ProgressTracker(
        f"Writing {image_path.name}",
        total_bytes=total_bytes,
        callback=progress_callback,
    )
    with operation_context("write", image=str(image_path), target=device.path):
        result = run_with_progress(command, tracker)
        if not result.ok:
            raise WriteError(
                f"Error writing ISO to USB drive: {result.message}",
                command=command,
                returncode=result.returncode,
            )


def eject_device(device: DeviceCandidate) -> None:
    """Eject the device.

    Raises:
        EjectError: If eject exits non-zero
    """
    command = privileged(["eject", device.path])
    result = run_command(command)
    if not result.ok:
        log.error(f"Eject failed for {device.path}: {result.message}")
        raise EjectError(
            f"Error ejecting disk: {result.message}",
            command=command,
            returncode=result.returncode,
        )
    log.info(f"Ejected {device.path}")
