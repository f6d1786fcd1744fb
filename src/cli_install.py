"""install-qt subcommand."""

from __future__ import annotations

import logging
from typing import Optional

from constants import Constants
from common.cancellation import CancelToken
from installer.orchestrator import InstallRun
from installer.planner import InstallRequest
from qtrepo.models import QtArch, QtHost, QtTarget, QtVersion

logger = logging.getLogger(__name__)


def build_request(args) -> InstallRequest:
    """Translate parsed arguments into an InstallRequest.

    Raises:
        InvalidArgument: If host, target or version are not valid.
    """
    return InstallRequest(
        host=QtHost(args.host),
        target=QtTarget(args.target),
        version=QtVersion.parse(args.version),
        arch=QtArch(args.arch) if args.arch else None,
        modules=list(getattr(args, "MODULES", None) or []),
        extensions=list(getattr(args, "EXTENSIONS", None) or []),
        archives=list(getattr(args, "ARCHIVES", None) or []),
        auto_desktop=bool(getattr(args, "AUTO_DESKTOP", False)),
        no_hash=bool(getattr(args, "NO_HASH", False)),
        mirror=getattr(args, "MIRROR", None),
    )


def run_install(args, cancel: Optional[CancelToken] = None) -> None:
    """Execute install-qt for the parsed arguments."""
    request = build_request(args)
    if request.no_hash:
        logger.warning("Hash verification is disabled; downloads will not be checked.")
    InstallRun(request, output_dir=Constants.OUTPUT_DIR, cancel=cancel).run()
