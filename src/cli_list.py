"""list-qt subcommand."""

from __future__ import annotations

from typing import List, Optional

from common.cancellation import CancelToken
from qtrepo.catalog import UpdateCache
from qtrepo.helpers import get_update_directory_url
from qtrepo.models import QtArch, QtHost, QtTarget, QtVersion


def list_qt(args, cancel: Optional[CancelToken] = None) -> List[str]:
    """Architectures of a version, or module names when an arch is given.

    Both lists keep catalog order.

    Raises:
        InvalidArgument: If the target needs an arch to locate its catalog.
    """
    host = QtHost(args.host)
    target = QtTarget(args.target)
    version = QtVersion.parse(args.version)
    arch = QtArch(args.arch) if args.arch else None
    cache = UpdateCache(no_hash=bool(getattr(args, "NO_HASH", False)), cancel=cancel)
    update = cache.get(
        get_update_directory_url(host, target, version, arch, getattr(args, "MIRROR", None))
    )
    if arch is None:
        return [a.value for a in update.architectures()]
    return [m.name for m in update.modules(arch)]


def run_list(args, cancel: Optional[CancelToken] = None) -> None:
    """Print list-qt results, one per line."""
    for name in list_qt(args, cancel):
        print(name)
