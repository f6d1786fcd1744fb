"""7z archive listing and safe extraction on top of libarchive.

Extraction guarantees:
  - no entry may resolve outside the destination root (PathEscape),
  - files are only written below directories announced by an explicit
    directory entry of the same archive (MissingParentDirectory),
  - symbolic links are recreated as links on POSIX systems,
  - nothing is written through a symbolic link created by the archive,
  - POSIX permission bits recorded in the archive are applied.
"""
from __future__ import annotations

import contextlib
import logging
import os
import sys
import threading
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Set

from constants import Constants
from common.cancellation import CancelToken, check
from common.errors import CorruptEntry, MissingParentDirectory, PathEscape
from common.logging_utils import extra_context, is_debug_enabled, Timer

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
PERMISSION_MASK = 0o777
# libarchive reports these when a 7z entry carries no Unix attributes.
DEFAULT_FILE_PERM = 0o666
DEFAULT_DIR_PERM = 0o777


@dataclass(frozen=True)
class ArchiveEntry:
    """Metadata of one archive entry.

    ``mode`` is 0 when the archive records no permission bits.
    """
    name: str
    is_dir: bool
    is_symlink: bool = False
    mode: int = 0
    linkpath: str = ""


@contextlib.contextmanager
def _reader(archive_path: str) -> Iterator[Any]:
    """Open ``archive_path`` with libarchive, mapping its errors to CorruptEntry."""
    import libarchive  # pylint: disable=import-outside-toplevel

    try:
        with libarchive.file_reader(archive_path) as archive:
            yield archive
    except libarchive.ArchiveError as exc:
        raise CorruptEntry(f"Failed to read archive {archive_path}: {exc}") from exc


def _to_entry(raw: Any) -> ArchiveEntry:
    name = (raw.pathname or "").rstrip("/")
    is_dir = bool(raw.isdir)
    mode = (raw.perm or 0) & PERMISSION_MASK
    if mode == (DEFAULT_DIR_PERM if is_dir else DEFAULT_FILE_PERM):
        mode = 0
    return ArchiveEntry(
        name=name,
        is_dir=is_dir,
        is_symlink=bool(raw.issym),
        mode=mode,
        linkpath=raw.linkpath or "",
    )


def list_entries(archive_path: str) -> Iterator[ArchiveEntry]:
    """Lazily yield the entries of an archive in stored order (single pass)."""
    with _reader(archive_path) as archive:
        for raw in archive:
            yield _to_entry(raw)


def is_within(root: str, path: str) -> bool:
    """True if ``path`` equals ``root`` or is a separator-bounded descendant of it."""
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def _check_resolved(real_root: str, path: str, name: str) -> None:
    """Reject ``path`` if following existing links leaves ``real_root``."""
    if not is_within(real_root, os.path.realpath(path)):
        raise PathEscape(f"Entry {name!r} resolves outside of the destination.")


def _write_file(raw: Any, entry: ArchiveEntry, dest_path: str) -> None:
    if entry.is_symlink and not IS_WINDOWS:
        target = entry.linkpath
        if not target:
            target = b"".join(raw.get_blocks()).decode("utf-8")
        os.symlink(target, dest_path)
        return
    with open(dest_path, "wb", buffering=Constants.FILE_BUFFER_SIZE) as fh:
        if entry.is_symlink and entry.linkpath:
            fh.write(entry.linkpath.encode("utf-8"))
        else:
            for block in raw.get_blocks():
                fh.write(block)
    if not IS_WINDOWS and entry.mode:
        os.chmod(dest_path, entry.mode)


def extract(
    archive_path: str,
    dest_directory: str,
    create_directory_lock: Optional[threading.Lock] = None,
    cancel: Optional[CancelToken] = None,
) -> None:
    """Extract ``archive_path`` into ``dest_directory``.

    Args:
        archive_path: Path of the 7z archive.
        dest_directory: Destination root; created if absent.
        create_directory_lock: Lock serializing directory creation across
            concurrent extractions that share parent directories.
        cancel: Optional cancellation token, checked before every entry.

    Raises:
        CorruptEntry: On an entry with an empty name or an unreadable archive.
        PathEscape: If an entry resolves outside ``dest_directory``.
        MissingParentDirectory: If a file precedes its directory entry.
    """
    lock = create_directory_lock or threading.Lock()
    seen_directories: Set[str] = set()

    def create_directory(directory: str) -> None:
        if directory in seen_directories:
            return
        with lock:
            os.makedirs(directory, exist_ok=True)
        seen_directories.add(directory)

    dest_directory = os.path.abspath(dest_directory)
    create_directory(dest_directory)
    real_root = os.path.realpath(dest_directory)

    count = 0
    with Timer() as t:
        with _reader(archive_path) as archive:
            for raw in archive:
                check(cancel)
                entry = _to_entry(raw)
                if not entry.name:
                    raise CorruptEntry(f"Entry has an empty name in {archive_path}.")

                entry_dest = os.path.abspath(os.path.join(dest_directory, entry.name))
                if not is_within(dest_directory, entry_dest):
                    raise PathEscape(
                        f"Entry {entry.name!r} would be extracted outside of the destination."
                    )
                if os.path.islink(entry_dest):
                    raise PathEscape(
                        f"Entry {entry.name!r} would be written through a symbolic link."
                    )

                if entry.is_dir:
                    _check_resolved(real_root, entry_dest, entry.name)
                    create_directory(entry_dest)
                    continue

                parent = os.path.dirname(entry_dest)
                if parent not in seen_directories:
                    raise MissingParentDirectory(
                        f"File entry {entry.name!r} is missing a corresponding directory entry."
                    )
                _check_resolved(real_root, parent, entry.name)
                _write_file(raw, entry, entry_dest)
                count += 1

    if is_debug_enabled(logger):
        logger.debug(
            "Archive extracted",
            extra=extra_context(
                event="extract",
                component="sevenzip",
                action="extract",
                target=archive_path,
                files=count,
                duration_ms=t.duration_ms(),
            ),
        )
