"""ISO image resolution: local paths, downloads and validation.

Operator input is either an http(s) URL, which is downloaded with wget into
the download directory, or a local path, which only gets home-directory and
environment-variable expansion. No shell ever sees the input.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional

from isoboot.config.settings import DEFAULT_DOWNLOAD_DIR, DEFAULT_IMAGE_EXTENSION
from isoboot.domain.models import (
    ImageRejectReason,
    RemoteURL,
    parse_image_source,
)
from isoboot.logging import LoggerFactory

from .commands import run_command
from .exceptions import DownloadError, ImageValidationError


log = LoggerFactory.for_image()


def expand_path(text: str) -> Path:
    """Expand ``~`` and ``$VAR``/``${VAR}`` references in a path."""
    return Path(os.path.expandvars(os.path.expanduser(text.strip())))


def download_destination(url: str, download_dir: Path) -> Path:
    filename = RemoteURL(url).filename
    if not filename or filename in (".", ".."):
        raise DownloadError(f"Cannot determine a file name from URL: {url}")
    return download_dir / filename


def download(
    url: str,
    download_dir: Optional[Path] = None,
    notify: Callable[[str], None] = print,
) -> Path:
    """Download an image, resuming a partial file at the same destination.

    wget draws its own progress on the terminal.

    Raises:
        DownloadError: If the destination cannot be prepared or wget fails
    """
    download_dir = download_dir or Path(DEFAULT_DOWNLOAD_DIR).expanduser()
    destination = download_destination(url, download_dir)
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise DownloadError(f"Cannot create download directory {download_dir}: {error}")

    notify(f"Downloading ISO to {destination}...")
    notify("This may take a while depending on your internet connection...")
    command = ["wget", "--show-progress", "-c", url, "-O", str(destination)]
    log.info(f"Downloading {url} to {destination}")
    result = run_command(command, capture=False)
    if not result.ok:
        log.warning(f"Download failed with exit code {result.returncode}: {url}")
        raise DownloadError(
            f"Error downloading ISO (exit code: {result.returncode})",
            command=command,
            returncode=result.returncode,
        )
    log.info(f"Download completed: {destination}")
    return destination


def validate_image(path: Path, extension: str = DEFAULT_IMAGE_EXTENSION) -> Path:
    """Check that the image exists, is a regular file, and has the extension.

    The extension check is a case-sensitive suffix match.

    Raises:
        ImageValidationError: FILE_MISSING or WRONG_EXTENSION
    """
    path = Path(path)
    if not path.is_file():
        raise ImageValidationError(ImageRejectReason.FILE_MISSING, str(path))
    if not str(path).endswith(extension):
        raise ImageValidationError(ImageRejectReason.WRONG_EXTENSION, str(path))
    log.info(f"Validated image {path}")
    return path


def resolve_image(
    text: str,
    *,
    download_dir: Optional[Path] = None,
    extension: str = DEFAULT_IMAGE_EXTENSION,
    downloader: Callable[[str, Optional[Path]], Path] = download,
) -> Path:
    """Turn operator input into a validated local image path.

    URLs are always downloaded before validation; local paths never are.

    Raises:
        DownloadError: If the download fails
        ImageValidationError: If the resulting file is not a usable image
    """
    source = parse_image_source(text.strip())
    if isinstance(source, RemoteURL):
        path = downloader(source.url, download_dir)
    else:
        path = expand_path(source.raw)
    return validate_image(path, extension)
