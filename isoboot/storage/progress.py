"""Progress parsing and streaming for dd writes."""

from __future__ import annotations

import re
import subprocess
import sys
import time
from typing import Callable, Optional, Sequence

from isoboot.domain.models import CommandResult
from isoboot.logging import LoggerFactory

from .devices import human_size


log = LoggerFactory.for_progress()

ProgressCallback = Callable[[str, Optional[float]], None]

_BYTES_RE = re.compile(r"(\d+)\s+bytes")
_RATE_RE = re.compile(r"(\d+(?:[.,]\d+)?)\s*([kKMGT]?)(i?)B/s")
_SEGMENT_SPLIT = re.compile(rb"[\r\n]")

_UNIT_POWERS = {"": 0, "k": 1, "K": 1, "M": 2, "G": 3, "T": 4}


def format_eta(seconds):
    """Format ETA in HH:MM:SS or MM:SS format."""
    if seconds is None:
        return None
    seconds = int(seconds)
    if seconds < 0:
        return None
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def parse_dd_progress(line: str) -> tuple[Optional[int], Optional[float]]:
    """Extract (bytes copied, bytes per second) from a dd status line."""
    bytes_match = _BYTES_RE.search(line)
    if not bytes_match:
        return None, None
    bytes_copied = int(bytes_match.group(1))
    rate = None
    rate_match = _RATE_RE.search(line)
    if rate_match:
        value = float(rate_match.group(1).replace(",", "."))
        base = 1024 if rate_match.group(3) else 1000
        rate = value * base ** _UNIT_POWERS[rate_match.group(2)]
    return bytes_copied, rate


def format_progress_line(title, bytes_copied, total_bytes, rate, eta, spinner=None):
    """One-line progress summary for the terminal."""
    parts = [f"{title} {spinner}" if spinner else title]
    if bytes_copied is not None:
        written = f"Wrote {human_size(bytes_copied)}"
        if total_bytes:
            percent = min(100.0, (bytes_copied / total_bytes) * 100)
            written = f"{written} of {human_size(total_bytes)} ({percent:.1f}%)"
        parts.append(written)
    else:
        parts.append("Working...")
    if rate:
        rate_part = f"{human_size(rate)}/s"
        if eta:
            rate_part = f"{rate_part} ETA {eta}"
        parts.append(rate_part)
    return " | ".join(parts)


class TerminalProgress:
    """Default progress sink: redraws a single terminal line.

    The line is ended when progress reaches 100% or ``close`` is called, so
    whatever is printed next starts on a fresh line.
    """

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self.line_open = False

    def __call__(self, line: str, ratio: Optional[float]) -> None:
        self.stream.write(f"\r\033[K{line}")
        self.line_open = True
        if ratio is not None and ratio >= 1.0:
            self.close()
        else:
            self.stream.flush()

    def close(self) -> None:
        if self.line_open:
            self.stream.write("\n")
            self.line_open = False
        self.stream.flush()


class ProgressTracker:
    """Turns raw dd status lines into progress updates with rate and ETA."""

    spinner_frames = ["|", "/", "-", "\\"]

    def __init__(
        self,
        title: str,
        total_bytes: Optional[int] = None,
        callback: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.title = title
        self.total_bytes = total_bytes
        self.callback = callback or TerminalProgress()
        self.clock = clock
        self.last_bytes: Optional[int] = None
        self.last_time: Optional[float] = None
        self.last_rate: Optional[float] = None
        self.spinner_index = 0

    def ratio(self, bytes_copied: Optional[int]) -> Optional[float]:
        if bytes_copied is None or not self.total_bytes:
            return None
        return max(0.0, min(1.0, bytes_copied / self.total_bytes))

    def feed(self, line: str) -> None:
        bytes_copied, rate = parse_dd_progress(line)
        if bytes_copied is None:
            return
        now = self.clock()
        if rate is None and self.last_bytes is not None and self.last_time is not None:
            # Don't use stale rates when dd omits one
            delta_bytes = bytes_copied - self.last_bytes
            delta_time = now - self.last_time
            if delta_bytes >= 0 and delta_time > 0:
                rate = delta_bytes / delta_time
        eta = None
        if rate and self.total_bytes and bytes_copied <= self.total_bytes:
            eta = format_eta((self.total_bytes - bytes_copied) / rate)
        self.last_bytes = bytes_copied
        self.last_time = now
        self.last_rate = rate or self.last_rate
        self.spinner_index = (self.spinner_index + 1) % len(self.spinner_frames)
        log.trace(line.strip())
        self.callback(
            format_progress_line(
                self.title,
                bytes_copied,
                self.total_bytes,
                self.last_rate,
                eta,
                self.spinner_frames[self.spinner_index],
            ),
            self.ratio(bytes_copied),
        )

    def finish(self) -> None:
        self.callback(f"{self.title} | Complete", 1.0)

    def close(self) -> None:
        """End an unfinished progress line after a failure or interrupt."""
        close = getattr(self.callback, "close", None)
        if close is not None:
            close()


def run_with_progress(
    command: Sequence[str],
    tracker: ProgressTracker,
) -> CommandResult:
    """Run a command, feeding each stderr status segment to the tracker.

    dd redraws its status with carriage returns, so stderr is read in raw
    chunks and split on both ``\\r`` and ``\\n``.
    """
    command = list(command)
    log.debug(f"Running command: {' '.join(command)}")
    try:
        process = subprocess.Popen(
            command, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE
        )
    except FileNotFoundError as error:
        return CommandResult(command, 127, "", str(error))

    segments: list[str] = []
    pending = b""
    try:
        while True:
            chunk = process.stderr.read1(4096)
            if not chunk:
                break
            pending += chunk
            *complete, pending = _SEGMENT_SPLIT.split(pending)
            for raw in complete:
                text = raw.decode("utf-8", errors="replace").strip()
                if text:
                    segments.append(text)
                    tracker.feed(text)
    except KeyboardInterrupt:
        # The child shares the terminal's process group and got the same SIGINT
        tracker.close()
        process.wait()
        raise
    finally:
        process.stderr.close()
    if pending.strip():
        text = pending.decode("utf-8", errors="replace").strip()
        segments.append(text)
        tracker.feed(text)
    returncode = process.wait()
    if returncode == 0:
        tracker.finish()
    else:
        tracker.close()
    # Status lines are noise in an error message; keep dd's own diagnostics
    diagnostics = [segment for segment in segments if not _BYTES_RE.search(segment)]
    return CommandResult(command, returncode, "", "\n".join(diagnostics))
