import argparse
import sys

from isoboot.__version__ import __version__
from isoboot.app.workflow import EXIT_FAILURE, EXIT_OK, run_workflow
from isoboot.config.settings import IsoBootSettings
from isoboot.logging import LoggerFactory, setup_logging
from isoboot.storage.dependencies import check_dependencies
from isoboot.storage.exceptions import DependencyMissingError


HELP_TEXT = """
==========================
ISO USB BOOTMAKER
==========================

This CLI tool writes an ISO bootable image onto a USB drive.

Options:
  help        Display this help message.

Steps:
1. Displays the current disk layout.
2. Prompts for a path to unmount (optional).
3. Prompts for the disk to format (e.g., /dev/sdb). Must be a valid device.
4. Prompts for the ISO path or download URL.
5. Checks that the ISO exists and is valid.
6. Confirms the formatting operation.
7. Writes the ISO to the USB drive.
8. Optionally ejects the USB drive.

Type 'exit' at any prompt to quit without writing anything.

Requirements:
- dd, lsblk, mount, umount, sync, eject
- wget (for downloading ISO)
- sudo (when not running as root)
- A downloaded ISO or URL to download from

Example:
  {prog}
  {prog} help

Version: {version}
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="isoboot",
        description="Write an ISO image to a USB drive and make it bootable",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=["help"],
        help="Display usage information and exit",
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        print(HELP_TEXT.format(prog=parser.prog, version=__version__))
        return EXIT_OK

    settings = IsoBootSettings.from_store()
    setup_logging(debug=settings.debug, log_dir=settings.log_dir)
    log = LoggerFactory.for_system()
    log.info(f"isoboot {__version__} starting")

    try:
        check_dependencies()
    except DependencyMissingError as error:
        for command in error.missing:
            print(f"Error: {command} is not installed. Please install it first.")
        log.error(str(error))
        return EXIT_FAILURE

    status = run_workflow(settings)
    log.info(f"isoboot finished with exit status {status}")
    return status


if __name__ == "__main__":
    sys.exit(main())
