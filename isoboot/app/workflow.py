"""The write workflow: a strictly ordered, safety-gated state machine.

    START -> SHOW_LAYOUT -> UNMOUNT -> SELECT_TARGET -> SELECT_IMAGE
          -> CONFIRM_WRITE -> WRITE -> SYNC -> OFFER_EJECT -> DONE

Each stage is a plain function taking the Session, the Prompter and the
WorkflowServices bundle. Selection stages loop until a validated value is
produced; nothing but a validator's return value is ever stored on the
session. UserCancelled from any prompt unwinds to ``IsoBootWorkflow.run``,
which exits cleanly with status 0. Ctrl-C while an external tool is running
also ends there; it is fatal (status 1) only once the write has begun.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Optional

from isoboot.config.settings import IsoBootSettings
from isoboot.domain.models import (
    Answer,
    CommandResult,
    DeviceCandidate,
    Session,
    Stage,
    UnmountOutcome,
)
from isoboot.logging import LoggerFactory
from isoboot.storage import devices, image, mount, privileges, validation, writer
from isoboot.storage.commands import sync_filesystems
from isoboot.storage.exceptions import (
    DeviceValidationError,
    DownloadError,
    EjectError,
    ImageValidationError,
    PrivilegeDeniedError,
    UnmountFailedError,
    UserCancelled,
    WriteError,
)
from isoboot.ui.prompts import Prompter


log = LoggerFactory.for_system()

EXIT_OK = 0
EXIT_FAILURE = 1

# From WRITE on, an interrupt may leave the device partially written
INTERRUPT_FATAL_STAGES = {Stage.WRITE, Stage.SYNC, Stage.OFFER_EJECT}


@dataclass
class WorkflowServices:
    """Every OS-touching collaborator the workflow consults."""

    list_devices: Callable[[], Iterable[str]] = devices.list_devices
    describe_device: Callable[[str], str] = devices.describe_device
    validate_target: Callable[[str], DeviceCandidate] = validation.validate_target
    resolve_image: Callable[[str], Path] = image.resolve_image
    ensure_elevated: Callable[[], None] = privileges.ensure_elevated
    unmount_path: Callable[[str], CommandResult] = mount.unmount_path
    write_image: Callable[[Path, DeviceCandidate], None] = writer.write_image
    sync: Callable[[], CommandResult] = sync_filesystems
    eject: Callable[[DeviceCandidate], None] = writer.eject_device

    @classmethod
    def from_settings(
        cls, settings: IsoBootSettings, notify: Callable[[str], None] = print
    ) -> WorkflowServices:
        """Bind settings into the real implementations.

        ``notify`` receives the sudo and download notices, normally the
        prompter's ``say``.
        """
        return cls(
            validate_target=partial(
                validation.validate_target,
                system_disk=settings.system_disk,
                pattern=settings.device_pattern,
            ),
            resolve_image=partial(
                image.resolve_image,
                download_dir=settings.download_dir,
                extension=settings.image_extension,
                downloader=partial(image.download, notify=notify),
            ),
            ensure_elevated=partial(privileges.ensure_elevated, notify=notify),
            write_image=partial(writer.write_image, block_size=settings.block_size),
        )


# ==============================================================================
# Stages
# ==============================================================================


def show_layout(session: Session, prompter: Prompter, services: WorkflowServices) -> None:
    prompter.say("", "Current disk layout:", "")
    for line in services.list_devices():
        prompter.say(line)
    prompter.say(
        "",
        "This is your current disk layout. Consider this before proceeding.",
        "",
    )
    prompter.wait_for_enter("Press Enter to continue, or type 'exit' to quit")


def maybe_unmount(
    session: Session, prompter: Prompter, services: WorkflowServices
) -> UnmountOutcome:
    """Optionally unmount one path. Failures are warnings, never fatal."""
    if prompter.prompt_yes_no("Do you want to unmount a disk?") is Answer.NO:
        return UnmountOutcome()
    session.unmount_requested = True
    path = prompter.prompt_text("Enter the path to unmount (e.g., /mnt/usb)")
    if not path:
        return UnmountOutcome()

    prompter.say(f"Unmounting {path}...")
    try:
        services.ensure_elevated()
    except PrivilegeDeniedError as error:
        warning = f"Could not unmount {path}: {error}"
        prompter.warn(warning)
        return UnmountOutcome(path, warning)

    try:
        _unmount(services, path)
    except UnmountFailedError as error:
        prompter.error(str(error))
        return UnmountOutcome(path, str(error))
    return UnmountOutcome(path)


def _unmount(services: WorkflowServices, path: str) -> None:
    result = services.unmount_path(path)
    if not result.ok:
        raise UnmountFailedError(
            f"Error unmounting {path} (exit code: {result.returncode})",
            command=result.command,
            returncode=result.returncode,
        )


def select_target(
    session: Session, prompter: Prompter, services: WorkflowServices
) -> DeviceCandidate:
    while True:
        candidate_path = prompter.prompt_text(
            "Enter the disk to format (e.g., /dev/sdb)"
        )
        try:
            return services.validate_target(candidate_path)
        except DeviceValidationError as error:
            prompter.error(str(error))


def select_image(
    session: Session, prompter: Prompter, services: WorkflowServices
) -> Path:
    while True:
        prompter.say(
            "",
            "You can either:",
            "1. Provide the path to a local ISO",
            "2. Provide a download URL for the ISO",
            "",
        )
        source = prompter.prompt_text("Enter the ISO path or URL")
        try:
            return services.resolve_image(source)
        except DownloadError as error:
            prompter.error(f"Failed to download ISO file. {error}")
        except ImageValidationError as error:
            prompter.error(
                f"{error}. Please provide a valid path to an ISO file or a download URL."
            )


def confirm_write(
    session: Session, prompter: Prompter, services: WorkflowServices
) -> bool:
    label = services.describe_device(session.target_device.path)
    answer = prompter.prompt_yes_no(
        f"Are you sure you want to format {label}? This will ERASE ALL DATA"
    )
    session.confirmed = answer is Answer.YES
    return session.confirmed


def write(session: Session, prompter: Prompter, services: WorkflowServices) -> None:
    """Raises PrivilegeDeniedError or WriteError; both are fatal."""
    services.ensure_elevated()
    prompter.say("Writing ISO to USB drive... This may take several minutes...")
    services.write_image(session.image_path, session.target_device)
    prompter.say("ISO successfully written to USB drive")


def sync(session: Session, prompter: Prompter, services: WorkflowServices) -> None:
    result = services.sync()
    if not result.ok:
        log.warning(f"sync reported exit code {result.returncode}: {result.message}")


def offer_eject(
    session: Session, prompter: Prompter, services: WorkflowServices
) -> bool:
    """Raises PrivilegeDeniedError or EjectError when an accepted eject fails."""
    answer = prompter.prompt_yes_no("Do you want to eject the disk?")
    session.eject_requested = answer is Answer.YES
    if not session.eject_requested:
        return False
    prompter.say(f"Ejecting {session.target_device.path}...")
    services.ensure_elevated()
    services.eject(session.target_device)
    prompter.say("Disk ejected successfully")
    return True


# ==============================================================================
# Orchestrator
# ==============================================================================


@dataclass
class IsoBootWorkflow:
    prompter: Prompter = field(default_factory=Prompter)
    services: WorkflowServices = field(default_factory=WorkflowServices)
    session: Session = field(default_factory=Session)

    def _enter(self, stage: Stage) -> None:
        self.session.advance(stage)
        log.debug(f"Entering stage {stage.label}")

    def run(self) -> int:
        """Drive the session to completion and return the process exit status."""
        try:
            return self._run_stages()
        except UserCancelled as cancelled:
            log.info(f"Operator exited during {self.session.stage.label}")
            self.prompter.say(str(cancelled))
            return EXIT_OK
        except KeyboardInterrupt:
            return self._interrupted()

    def _interrupted(self) -> int:
        """Ctrl-C outside a prompt, e.g. while wget, lsblk or dd is running."""
        stage = self.session.stage
        self.prompter.say("")
        if stage in INTERRUPT_FATAL_STAGES:
            log.error(f"Interrupted during {stage.label}")
            self.prompter.error(
                f"Interrupted during {stage.label.lower()}. "
                f"{self.session.target_device} may not be bootable."
            )
            return EXIT_FAILURE
        log.warning(f"Interrupted during {stage.label}, nothing was written")
        self.prompter.say("Interrupted. Nothing was written to the device.")
        return EXIT_OK

    def _run_stages(self) -> int:
        session, prompter, services = self.session, self.prompter, self.services

        self._enter(Stage.SHOW_LAYOUT)
        show_layout(session, prompter, services)

        self._enter(Stage.UNMOUNT)
        maybe_unmount(session, prompter, services)

        self._enter(Stage.SELECT_TARGET)
        session.assign_target(select_target(session, prompter, services))

        self._enter(Stage.SELECT_IMAGE)
        session.assign_image(select_image(session, prompter, services))

        self._enter(Stage.CONFIRM_WRITE)
        if not confirm_write(session, prompter, services):
            prompter.say("", "Operation cancelled.", "")
            log.info("Write declined by operator")
            return EXIT_OK

        self._enter(Stage.WRITE)
        try:
            write(session, prompter, services)
        except (PrivilegeDeniedError, WriteError) as error:
            prompter.error(str(error))
            return EXIT_FAILURE

        self._enter(Stage.SYNC)
        sync(session, prompter, services)

        self._enter(Stage.OFFER_EJECT)
        try:
            offer_eject(session, prompter, services)
        except (PrivilegeDeniedError, EjectError) as error:
            prompter.error(str(error))
            return EXIT_FAILURE

        self._enter(Stage.DONE)
        prompter.say("", "ISO bootable USB created successfully!", "")
        return EXIT_OK


def run_workflow(
    settings: IsoBootSettings, prompter: Optional[Prompter] = None
) -> int:
    prompter = prompter or Prompter()
    workflow = IsoBootWorkflow(
        prompter=prompter,
        services=WorkflowServices.from_settings(settings, notify=prompter.say),
    )
    return workflow.run()
