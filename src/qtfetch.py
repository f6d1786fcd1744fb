"""qtfetch - Qt binary installer.

Downloads, verifies, extracts and patches Qt builds from the Qt online
repository.

    Returns:
        int: Exit code
"""
import logging
import signal
import sys
from typing import List, Optional

from constants import Commands, ExitCodes
from common.cancellation import CancelToken
from common.errors import Cancelled, HttpError, QtFetchError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args

logger = logging.getLogger(__name__)


def _install_interrupt_handler(cancel: CancelToken):
    """Route the first SIGINT to the cancel token; a second one aborts immediately."""

    def handler(signum, frame):  # pylint: disable=unused-argument
        if cancel.cancelled:
            raise KeyboardInterrupt
        logger.warning("Cancelling, waiting for running tasks to stop...")
        cancel.cancel()

    try:
        return signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not on the main thread.
        return None


def run(argv: Optional[List[str]] = None, cancel: Optional[CancelToken] = None) -> int:
    """Parse ``argv``, dispatch the subcommand and map failures to an exit code."""
    args = parse_args(argv)
    configure_logging(getattr(args, "LOG_LEVEL", None), getattr(args, "LOG_FILE", None))
    cancel = cancel or CancelToken()

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        from cli_config import apply_overrides  # pylint: disable=import-outside-toplevel
        apply_overrides(args)
        if args.COMMAND == Commands.INSTALL_QT.value:
            from cli_install import run_install  # pylint: disable=import-outside-toplevel
            run_install(args, cancel)
        elif args.COMMAND == Commands.LIST_QT.value:
            from cli_list import run_list  # pylint: disable=import-outside-toplevel
            run_list(args, cancel)
    except (Cancelled, KeyboardInterrupt):
        logger.error("Operation was cancelled by user.")
        return ExitCodes.CANCELLED.value
    except HttpError as exc:
        logger.error("%s", exc)
        if exc.status_code is None:
            return ExitCodes.CONNECTION_ERROR.value
        return ExitCodes.INSTALL_ERROR.value
    except QtFetchError as exc:
        logger.error("%s", exc)
        return ExitCodes.INSTALL_ERROR.value
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return ExitCodes.INSTALL_ERROR.value
    return ExitCodes.SUCCESS.value


def main() -> None:
    """Main function of the program."""
    cancel = CancelToken()
    previous = _install_interrupt_handler(cancel)
    try:
        exit_code = run(cancel=cancel)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
