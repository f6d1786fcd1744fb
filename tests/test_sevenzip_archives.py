"""Listing and extraction of real 7z archives through libarchive."""

import os
import stat
import sys

import py7zr
import pytest

from archive import sevenzip
from common.errors import MissingParentDirectory, PathEscape

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX file semantics")


def _build(archive_path, members):
    """Write ``(disk_path, arcname)`` members to a 7z archive in the given order."""
    with py7zr.SevenZipFile(str(archive_path), "w") as archive:
        for disk_path, arcname in members:
            archive.write(str(disk_path), arcname)
    return str(archive_path)


@pytest.fixture
def qt_tree(tmp_path):
    """A small install tree with executables, a private file and a library link."""
    src = tmp_path / "src"
    (src / "bin").mkdir(parents=True)
    (src / "lib").mkdir()
    qmake = src / "bin" / "qmake"
    qmake.write_bytes(b"#!/bin/sh\n")
    os.chmod(qmake, 0o755)
    private = src / "bin" / "private.conf"
    private.write_bytes(b"secret")
    os.chmod(private, 0o600)
    (src / "lib" / "libQt6Core.so.6").write_bytes(b"ELF")
    (src / "lib" / "libQt6Core.so").symlink_to("libQt6Core.so.6")
    return _build(tmp_path / "qtbase.7z", [
        (src / "bin", "bin"),
        (qmake, "bin/qmake"),
        (private, "bin/private.conf"),
        (src / "lib", "lib"),
        (src / "lib" / "libQt6Core.so.6", "lib/libQt6Core.so.6"),
        (src / "lib" / "libQt6Core.so", "lib/libQt6Core.so"),
    ])


class TestRealListing:
    """Mapping of libarchive entries."""

    def test_entries_in_stored_order(self, qt_tree):
        """Directory names carry no trailing slash and links are flagged."""
        listed = list(sevenzip.list_entries(qt_tree))
        assert [e.name for e in listed] == [
            "bin", "bin/qmake", "bin/private.conf",
            "lib", "lib/libQt6Core.so.6", "lib/libQt6Core.so",
        ]
        assert [e.is_dir for e in listed] == [True, False, False, True, False, False]
        link = listed[-1]
        assert link.is_symlink
        assert link.linkpath == "libQt6Core.so.6"
        assert listed[1].mode == 0o755
        assert listed[2].mode == 0o600


class TestRealExtract:
    """Extraction of archives written by another tool."""

    def test_permissions_and_links(self, tmp_path, qt_tree):
        """Recorded modes are applied and links are recreated."""
        dest = tmp_path / "out"
        sevenzip.extract(qt_tree, str(dest))

        assert stat.S_IMODE(os.stat(dest / "bin" / "qmake").st_mode) == 0o755
        assert stat.S_IMODE(os.stat(dest / "bin" / "private.conf").st_mode) == 0o600
        link = dest / "lib" / "libQt6Core.so"
        assert link.is_symlink()
        assert link.read_bytes() == b"ELF"

    def test_directory_over_symlink(self, tmp_path):
        """A symlink followed by a directory and a file of the same path cannot escape."""
        outside = tmp_path / "outside"
        outside.mkdir()
        link_src = tmp_path / "link_src"
        link_src.mkdir()
        (link_src / "a").symlink_to(outside)
        dir_src = tmp_path / "dir_src"
        (dir_src / "a").mkdir(parents=True)
        (dir_src / "a" / "pwned").write_bytes(b"x")
        archive = _build(tmp_path / "evil.7z", [
            (link_src / "a", "a"),
            (dir_src / "a", "a"),
            (dir_src / "a" / "pwned", "a/pwned"),
        ])

        with pytest.raises(PathEscape):
            sevenzip.extract(archive, str(tmp_path / "out"))
        assert os.listdir(outside) == []

    def test_file_before_directory(self, tmp_path):
        """A file stored ahead of its directory entry is refused."""
        src = tmp_path / "src"
        (src / "bin").mkdir(parents=True)
        (src / "bin" / "moc").write_bytes(b"tool")
        archive = _build(tmp_path / "bad.7z", [
            (src / "bin" / "moc", "bin/moc"),
            (src / "bin", "bin"),
        ])

        with pytest.raises(MissingParentDirectory):
            sevenzip.extract(archive, str(tmp_path / "out"))
