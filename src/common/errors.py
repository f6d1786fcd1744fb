"""Error types raised by the catalog, fetch, archive and installer layers.

Every failure aborts the run; only qtfetch.main maps these to exit codes.
"""
from __future__ import annotations

from typing import Iterable, List, Optional


class QtFetchError(Exception):
    """Base class for all qtfetch failures."""


class InvalidArgument(QtFetchError):
    """A host, target, version or option value was not acceptable."""


class MalformedIndex(QtFetchError):
    """The Updates.xml catalog did not have the expected structure."""


class NotFound(QtFetchError):
    """A catalog lookup matched nothing."""


class Ambiguous(QtFetchError):
    """A catalog lookup that must be unique matched more than once."""


class HttpError(QtFetchError):
    """A request failed, either with a non-2xx status or at the transport level."""

    def __init__(self, url: str, status_code: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            message = f"Request to {url} failed: {reason}"
        else:
            message = f"Request to {url} failed with HTTP status {status_code}"
        super().__init__(message)


class MalformedHash(QtFetchError):
    """A published .sha256 sidecar was formatted incorrectly."""


class HashMismatch(QtFetchError):
    """The SHA-256 digest of a downloaded body differs from the published one."""


class PathEscape(QtFetchError):
    """An archive entry would be extracted outside the destination directory."""


class MissingParentDirectory(QtFetchError):
    """A file entry appeared before a directory entry for its parent."""


class CorruptEntry(QtFetchError):
    """An archive entry could not be interpreted."""


class _NamesNotFound(QtFetchError):
    kind = "item"

    def __init__(self, names: Iterable[str]):
        self.names: List[str] = list(names)
        super().__init__(f"{self.kind.capitalize()}(s) not found: {', '.join(self.names)}")


class ModuleNotFound(_NamesNotFound):
    """One or more requested modules exist in no consulted catalog."""

    kind = "module"


class ExtensionNotFound(_NamesNotFound):
    """One or more requested extensions exist in no consulted catalog."""

    kind = "extension"


class AmbiguousLayout(QtFetchError):
    """The install directory name could not be derived from the base archive."""


class AlreadyInstalled(QtFetchError):
    """A target install directory exists already."""


class Cancelled(QtFetchError):
    """The run was cancelled by the user."""
