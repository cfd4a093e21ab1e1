"""
Pytest configuration and shared fixtures for isoboot tests.

No test touches a real block device: subprocess calls are patched and the
workflow runs against fake collaborators.
"""

from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest

from isoboot.app.workflow import WorkflowServices
from isoboot.domain.models import CommandResult, DeviceCandidate
from isoboot.ui.prompts import Prompter


# ==============================================================================
# Prompt Fixtures
# ==============================================================================


class ScriptedInput:
    """Stand-in for input() that replays a fixed list of answers."""

    def __init__(self, answers: List[str]):
        self.answers = list(answers)
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {prompt!r}")
        answer = self.answers.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        return answer


class CapturedOutput:
    def __init__(self):
        self.lines: List[str] = []

    def __call__(self, *args) -> None:
        self.lines.append(" ".join(str(arg) for arg in args))

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@pytest.fixture
def output() -> CapturedOutput:
    return CapturedOutput()


@pytest.fixture
def make_prompter(output):
    """Factory building a Prompter that answers from a script."""

    def _make(*answers):
        scripted = ScriptedInput(list(answers))
        prompter = Prompter(input_func=scripted, output_func=output)
        prompter.scripted = scripted
        return prompter

    return _make


# ==============================================================================
# Filesystem Fixtures
# ==============================================================================


@pytest.fixture
def iso_file(tmp_path) -> Path:
    """A small file with the .iso extension."""
    path = tmp_path / "os.iso"
    path.write_bytes(b"fake iso content" * 64)
    return path


@pytest.fixture
def proc_mounts_text() -> str:
    return (
        "/dev/sda2 / ext4 rw,relatime 0 0\n"
        "/dev/sda1 /boot/efi vfat rw,relatime 0 0\n"
        "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
        "/dev/sdc1 /mnt/usb vfat rw,relatime 0 0\n"
        "/dev/nvme0n1p2 /media/My\\040Disk ext4 rw 0 0\n"
    )


# ==============================================================================
# Workflow Fixtures
# ==============================================================================


@pytest.fixture
def ok_result():
    def _make(command=("true",)):
        return CommandResult(list(command), 0)

    return _make


@pytest.fixture
def fake_services(ok_result) -> WorkflowServices:
    """WorkflowServices whose collaborators are all mocks that succeed."""
    return WorkflowServices(
        list_devices=Mock(return_value=iter(["NAME SIZE", "sdb 14.9G"])),
        describe_device=Mock(side_effect=lambda path: path),
        validate_target=Mock(side_effect=lambda path: DeviceCandidate(path)),
        resolve_image=Mock(side_effect=lambda text: Path(text)),
        ensure_elevated=Mock(return_value=None),
        unmount_path=Mock(return_value=ok_result(["umount"])),
        write_image=Mock(return_value=None),
        sync=Mock(return_value=ok_result(["sync"])),
        eject=Mock(return_value=None),
    )
