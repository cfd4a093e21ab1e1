"""Tests for the write workflow state machine.

Covers:
- Stage ordering and write-once session fields
- Unmount stage warnings
- Target and image re-prompt loops
- Cancellation at every prompt and declining the write
- Fatal write/eject failures
- Ctrl-C while an external tool runs
- End-to-end scenarios against real validators with a faked system
"""

from functools import partial
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from isoboot.app import workflow
from isoboot.app.workflow import EXIT_FAILURE, EXIT_OK, IsoBootWorkflow
from isoboot.domain.models import (
    CommandResult,
    DeviceCandidate,
    DeviceRejectReason,
    Session,
    Stage,
)
from isoboot.storage import image, validation
from isoboot.storage.exceptions import (
    DeviceValidationError,
    DownloadError,
    EjectError,
    PrivilegeDeniedError,
    UnmountFailedError,
    WriteError,
)
from isoboot.storage.mount import MountEntry


HAPPY_PATH = ["", "n", "/dev/sdb", "/home/user/os.iso", "y", "n"]


def run(make_prompter, services, *answers):
    wf = IsoBootWorkflow(prompter=make_prompter(*answers), services=services)
    return wf, wf.run()


# ==============================================================================
# Session
# ==============================================================================


class TestSession:
    def test_advances_in_order(self):
        session = Session()
        for stage in list(Stage)[1:]:
            session.advance(stage)
        assert session.history == list(Stage)

    def test_refuses_skipping(self):
        session = Session()
        session.advance(Stage.SHOW_LAYOUT)
        with pytest.raises(RuntimeError):
            session.advance(Stage.SELECT_TARGET)

    def test_refuses_going_back(self):
        session = Session()
        session.advance(Stage.SHOW_LAYOUT)
        session.advance(Stage.UNMOUNT)
        with pytest.raises(RuntimeError):
            session.advance(Stage.SHOW_LAYOUT)

    def test_target_is_write_once(self):
        session = Session()
        session.assign_target(DeviceCandidate("/dev/sdb"))
        with pytest.raises(RuntimeError):
            session.assign_target(DeviceCandidate("/dev/sdc"))

    def test_target_requires_validated_candidate(self):
        with pytest.raises(TypeError):
            Session().assign_target("/dev/sdb")

    def test_image_is_write_once(self, iso_file):
        session = Session()
        session.assign_image(iso_file)
        with pytest.raises(RuntimeError):
            session.assign_image(iso_file)


# ==============================================================================
# Happy Path
# ==============================================================================


class TestHappyPath:
    def test_full_run_writes_once_and_syncs(self, make_prompter, fake_services, output):
        wf, status = run(make_prompter, fake_services, *HAPPY_PATH)

        assert status == EXIT_OK
        fake_services.write_image.assert_called_once_with(
            Path("/home/user/os.iso"), DeviceCandidate("/dev/sdb")
        )
        fake_services.sync.assert_called_once_with()
        fake_services.eject.assert_not_called()
        assert wf.session.history == list(Stage)
        assert wf.session.confirmed is True
        assert wf.session.eject_requested is False
        assert "ISO bootable USB created successfully!" in output.lines

    def test_layout_lines_are_shown(self, make_prompter, fake_services, output):
        run(make_prompter, fake_services, *HAPPY_PATH)
        assert "Current disk layout:" in output.lines
        assert "sdb 14.9G" in output.lines

    def test_eject_accepted(self, make_prompter, fake_services, output):
        answers = HAPPY_PATH[:-1] + ["y"]
        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        fake_services.eject.assert_called_once_with(DeviceCandidate("/dev/sdb"))
        assert "Disk ejected successfully" in output.lines

    def test_elevation_requested_lazily_before_each_privileged_action(
        self, make_prompter, fake_services
    ):
        calls = []
        fake_services.ensure_elevated.side_effect = lambda: calls.append("elevate")
        fake_services.write_image.side_effect = lambda *a: calls.append("write")
        fake_services.eject.side_effect = lambda *a: calls.append("eject")
        answers = HAPPY_PATH[:-1] + ["y"]

        run(make_prompter, fake_services, *answers)

        assert calls == ["elevate", "write", "elevate", "eject"]

    def test_no_elevation_when_nothing_privileged_happens(
        self, make_prompter, fake_services
    ):
        run(make_prompter, fake_services, "", "n", "/dev/sdb", "/tmp/os.iso", "n")
        fake_services.ensure_elevated.assert_not_called()

    def test_sync_failure_is_not_fatal(self, make_prompter, fake_services):
        fake_services.sync.return_value = CommandResult(["sync"], 1, "", "io")
        _, status = run(make_prompter, fake_services, *HAPPY_PATH)
        assert status == EXIT_OK


# ==============================================================================
# Unmount Stage
# ==============================================================================


class TestUnmountStage:
    def test_unmount_requested(self, make_prompter, fake_services):
        answers = ["", "y", "/mnt/usb", "/dev/sdb", "/tmp/os.iso", "y", "n"]
        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        assert wf.session.unmount_requested is True
        fake_services.unmount_path.assert_called_once_with("/mnt/usb")

    def test_unmount_failure_warns_and_proceeds(
        self, make_prompter, fake_services, output
    ):
        fake_services.unmount_path.return_value = CommandResult(["umount"], 32)
        answers = ["", "y", "/mnt/usb", "/dev/sdb", "/tmp/os.iso", "y", "n"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        assert "Error: Error unmounting /mnt/usb (exit code: 32)" in output.lines
        fake_services.write_image.assert_called_once()

    def test_privilege_denied_on_unmount_is_a_warning(
        self, make_prompter, fake_services, output
    ):
        fake_services.ensure_elevated.side_effect = [PrivilegeDeniedError(), None]
        answers = ["", "y", "/mnt/usb", "/dev/sdb", "/tmp/os.iso", "y", "n"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        fake_services.unmount_path.assert_not_called()
        assert any(line.startswith("Warning: Could not unmount") for line in output.lines)

    def test_empty_unmount_path_is_a_no_op(self, make_prompter, fake_services):
        answers = ["", "y", "", "/dev/sdb", "/tmp/os.iso", "y", "n"]
        run(make_prompter, fake_services, *answers)
        fake_services.unmount_path.assert_not_called()

    def test_maybe_unmount_declined(self, make_prompter, fake_services):
        outcome = workflow.maybe_unmount(Session(), make_prompter("n"), fake_services)
        assert outcome.declined

    def test_maybe_unmount_failure_outcome(self, make_prompter, fake_services):
        fake_services.unmount_path.return_value = CommandResult(["umount"], 32)

        outcome = workflow.maybe_unmount(
            Session(), make_prompter("y", "/mnt/usb"), fake_services
        )

        assert outcome.path == "/mnt/usb"
        assert outcome.warning == "Error unmounting /mnt/usb (exit code: 32)"
        assert not outcome.declined

    def test_failed_unmount_raises_typed_error(self, fake_services):
        fake_services.unmount_path.return_value = CommandResult(["sudo", "umount"], 1)

        with pytest.raises(UnmountFailedError) as exc_info:
            workflow._unmount(fake_services, "/mnt/usb")

        assert exc_info.value.returncode == 1
        assert exc_info.value.command == ["sudo", "umount"]


# ==============================================================================
# Selection Loops
# ==============================================================================


class TestSelectionLoops:
    def test_rejected_target_reprompts(self, make_prompter, fake_services, output):
        fake_services.validate_target.side_effect = [
            DeviceValidationError(DeviceRejectReason.NOT_A_BLOCK_DEVICE, "/dev/xyz"),
            DeviceCandidate("/dev/sdb"),
        ]
        answers = ["", "n", "/dev/xyz", "/dev/sdb", "/tmp/os.iso", "y", "n"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        assert wf.session.target_device == DeviceCandidate("/dev/sdb")
        assert any("Invalid disk format" in line for line in output.lines)

    def test_download_failure_reprompts(self, make_prompter, fake_services, output):
        fake_services.resolve_image.side_effect = [
            DownloadError("Error downloading ISO (exit code: 4)"),
            Path("/tmp/os.iso"),
        ]
        answers = ["", "n", "/dev/sdb", "https://example.org/a.iso", "/tmp/os.iso", "y", "n"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        assert wf.session.image_path == Path("/tmp/os.iso")
        assert any("Failed to download ISO file" in line for line in output.lines)


# ==============================================================================
# Cancellation and Decline
# ==============================================================================


class TestCancellation:
    @pytest.mark.parametrize(
        "answers",
        [
            ["exit"],
            ["", "exit"],
            ["", "n", "exit"],
            ["", "n", "/dev/sdb", "EXIT"],
            ["", "n", "/dev/sdb", "/tmp/os.iso", "exit"],
        ],
        ids=["show-layout", "unmount", "select-target", "select-image", "confirm-write"],
    )
    def test_exit_before_write_never_writes(self, make_prompter, fake_services, answers):
        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        fake_services.write_image.assert_not_called()
        fake_services.eject.assert_not_called()

    def test_exit_at_eject_prompt_skips_eject(self, make_prompter, fake_services, output):
        answers = HAPPY_PATH[:-1] + ["exit"]
        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        fake_services.eject.assert_not_called()
        assert "Exiting..." in output.lines

    def test_decline_write(self, make_prompter, fake_services, output, tmp_path):
        device_contents = tmp_path / "device"
        device_contents.write_bytes(b"precious data")
        answers = ["", "n", "/dev/sdb", "/tmp/os.iso", "n"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        assert "Operation cancelled." in output.lines
        fake_services.write_image.assert_not_called()
        fake_services.sync.assert_not_called()
        assert wf.session.stage is Stage.CONFIRM_WRITE
        assert device_contents.read_bytes() == b"precious data"


# ==============================================================================
# Interrupts Outside Prompts
# ==============================================================================


class TestInterrupts:
    def test_interrupt_while_listing_devices(self, make_prompter, fake_services, output):
        fake_services.list_devices.side_effect = KeyboardInterrupt

        wf, status = run(make_prompter, fake_services)

        assert status == EXIT_OK
        assert wf.session.stage is Stage.SHOW_LAYOUT
        assert "Interrupted. Nothing was written to the device." in output.lines

    def test_interrupt_while_downloading(self, make_prompter, fake_services, output):
        fake_services.resolve_image.side_effect = KeyboardInterrupt
        answers = ["", "n", "/dev/sdb", "https://example.org/a.iso"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        fake_services.write_image.assert_not_called()
        assert "Interrupted. Nothing was written to the device." in output.lines

    def test_interrupt_while_writing_is_fatal(self, make_prompter, fake_services, output):
        fake_services.write_image.side_effect = KeyboardInterrupt
        answers = ["", "n", "/dev/sdb", "/tmp/os.iso", "y"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_FAILURE
        assert wf.session.stage is Stage.WRITE
        fake_services.sync.assert_not_called()
        assert "Error: Interrupted during write. /dev/sdb may not be bootable." in output.lines

    def test_interrupt_while_ejecting_is_fatal(self, make_prompter, fake_services, output):
        fake_services.eject.side_effect = KeyboardInterrupt
        answers = HAPPY_PATH[:-1] + ["y"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_FAILURE
        assert "ISO bootable USB created successfully!" not in output.lines


# ==============================================================================
# Fatal Failures
# ==============================================================================


class TestFatalFailures:
    def test_write_failure_exits_nonzero(self, make_prompter, fake_services, output):
        fake_services.write_image.side_effect = WriteError("Error writing ISO to USB drive")
        answers = ["", "n", "/dev/sdb", "/tmp/os.iso", "y"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_FAILURE
        assert "Error: Error writing ISO to USB drive" in output.lines
        fake_services.sync.assert_not_called()
        assert wf.session.stage is Stage.WRITE

    def test_privilege_denied_before_write_is_fatal(self, make_prompter, fake_services):
        fake_services.ensure_elevated.side_effect = PrivilegeDeniedError()
        answers = ["", "n", "/dev/sdb", "/tmp/os.iso", "y"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_FAILURE
        fake_services.write_image.assert_not_called()

    def test_eject_failure_exits_nonzero(self, make_prompter, fake_services, output):
        fake_services.eject.side_effect = EjectError("Error ejecting disk: busy")
        answers = HAPPY_PATH[:-1] + ["y"]

        _, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_FAILURE
        assert "Error: Error ejecting disk: busy" in output.lines
        assert "ISO bootable USB created successfully!" not in output.lines


# ==============================================================================
# End-to-End Scenarios
# ==============================================================================


@pytest.fixture
def block_devices():
    with patch("isoboot.storage.validation.is_block_device", return_value=True):
        yield


class TestScenarios:
    def test_scenario_a_write_then_decline_eject(
        self, make_prompter, fake_services, block_devices, tmp_path, monkeypatch
    ):
        home = tmp_path / "home" / "user"
        home.mkdir(parents=True)
        iso = home / "os.iso"
        iso.write_bytes(b"iso")
        monkeypatch.setenv("HOME", str(home))
        fake_services.validate_target = partial(validation.validate_target, mount_entries=[])
        fake_services.resolve_image = Mock(side_effect=image.resolve_image)

        _, status = run(make_prompter, fake_services, "", "n", "/dev/sdb", "~/os.iso", "y", "n")

        assert status == EXIT_OK
        fake_services.write_image.assert_called_once_with(iso, DeviceCandidate("/dev/sdb"))
        fake_services.sync.assert_called_once()
        fake_services.eject.assert_not_called()

    def test_scenario_b_system_disk_reprompts(
        self, make_prompter, fake_services, block_devices, output
    ):
        fake_services.validate_target = partial(validation.validate_target, mount_entries=[])

        _, status = run(make_prompter, fake_services, "", "n", "/dev/sda", "exit")

        assert status == EXIT_OK
        assert "Error: Cannot use system disk as target." in output.lines
        fake_services.write_image.assert_not_called()

    def test_scenario_c_downloaded_wrong_extension_reprompts(
        self, make_prompter, fake_services, tmp_path, output
    ):
        downloaded = tmp_path / "distro.img"
        downloaded.write_bytes(b"not an iso name")
        downloader = Mock(return_value=downloaded)
        fake_services.resolve_image = partial(image.resolve_image, downloader=downloader)
        answers = ["", "n", "/dev/sdb", "https://example.org/distro.iso", "exit"]

        wf, status = run(make_prompter, fake_services, *answers)

        assert status == EXIT_OK
        downloader.assert_called_once()
        assert wf.session.image_path is None
        fake_services.write_image.assert_not_called()
        image_prompts = [
            prompt for prompt in wf.prompter.scripted.prompts if "ISO path or URL" in prompt
        ]
        assert len(image_prompts) == 2

    def test_scenario_d_mounted_device_still_rejected_after_declined_unmount(
        self, make_prompter, fake_services, block_devices, output
    ):
        entries = [MountEntry("/dev/sdb1", "/mnt/usb", "vfat")]
        fake_services.validate_target = partial(
            validation.validate_target, mount_entries=entries
        )

        wf, status = run(make_prompter, fake_services, "", "n", "/dev/sdb", "exit")

        assert status == EXIT_OK
        fake_services.unmount_path.assert_not_called()
        assert "Error: Target disk is mounted. Please unmount it first." in output.lines
        target_prompts = [
            prompt for prompt in wf.prompter.scripted.prompts if "disk to format" in prompt
        ]
        assert len(target_prompts) == 2


class TestServicesFromSettings:
    def test_binds_settings(self, tmp_path):
        from isoboot.config.settings import IsoBootSettings

        settings = IsoBootSettings(
            system_disk="/dev/sdc",
            download_dir=tmp_path,
            image_extension=".img",
            block_size="1M",
        )
        services = workflow.WorkflowServices.from_settings(settings)

        assert services.validate_target.keywords["system_disk"] == "/dev/sdc"
        assert services.resolve_image.keywords["download_dir"] == tmp_path
        assert services.resolve_image.keywords["extension"] == ".img"
        assert services.write_image.keywords["block_size"] == "1M"

    def test_notices_routed_to_notify(self, tmp_path):
        from isoboot.config.settings import IsoBootSettings

        notify = Mock()
        services = workflow.WorkflowServices.from_settings(
            IsoBootSettings(download_dir=tmp_path), notify=notify
        )

        assert services.ensure_elevated.keywords["notify"] is notify
        downloader = services.resolve_image.keywords["downloader"]
        assert downloader.func is image.download
        assert downloader.keywords["notify"] is notify

    def test_run_workflow_uses_prompter_for_notices(self, mocker, make_prompter):
        from isoboot.config.settings import IsoBootSettings

        prompter = make_prompter("exit")
        from_settings = mocker.patch(
            "isoboot.app.workflow.WorkflowServices.from_settings"
        )

        status = workflow.run_workflow(IsoBootSettings(), prompter=prompter)

        assert status == EXIT_OK
        assert from_settings.call_args.kwargs["notify"] == prompter.say
