"""Post-extraction patching of an install tree.

An install is either autonomous (self-sufficient, typically the desktop
install) or cross-compile (a target install that borrows build tooling from
a companion desktop install through relative paths).
"""
from __future__ import annotations

import glob
import logging
import os
import stat
import sys
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

from qtrepo.models import QtArch, QtHost, QtVersion

logger = logging.getLogger(__name__)

BUILD_PLACEHOLDERS = ["/Users/qt/work/install/", "/home/qt/work/install/"]
WASM_SINGLETHREAD_ARCH = "wasm_singlethread"
WASM_EXECUTABLE_TOOLS = [
    "bin/qmake",
    "bin/qmake6",
    "bin/qt-cmake",
    "bin/qt-configure-module",
    "bin/qtpaths",
    "bin/qtpaths6",
    "libexec/qt-cmake-private",
    "libexec/qt-cmake-standalone-test",
]


@dataclass(frozen=True)
class AutonomousInstallation:
    """A self-sufficient install."""
    path: str
    host: QtHost


@dataclass(frozen=True)
class CrossCompileInstallation:
    """A target install paired with the companion desktop install at ``desktop_path``."""
    path: str
    arch: QtArch
    desktop_path: str
    desktop_host: QtHost


Installation = Union[AutonomousInstallation, CrossCompileInstallation]


def patch_config_file(path: str, updates: Sequence[Tuple[str, str]]) -> bool:
    """Rewrite lines starting with a known ``key=`` prefix.

    Each matching line becomes ``prefix + new_remainder``; line endings are
    preserved. The file is only rewritten when something changed.

    Args:
        path: File to patch.
        updates: Pairs of (line prefix, new remainder).

    Returns:
        bool: True if the file was rewritten.
    """
    if not os.path.isfile(path):
        logger.warning("Cannot patch missing file %s", path)
        return False
    with open(path, "r", encoding="utf-8", newline="") as fh:
        lines = fh.read().splitlines(keepends=True)

    changed = False
    for i, line in enumerate(lines):
        body = line.rstrip("\r\n")
        ending = line[len(body):]
        for prefix, remainder in updates:
            if body.startswith(prefix):
                replacement = prefix + remainder
                if replacement != body:
                    lines[i] = replacement + ending
                    changed = True
                break

    if changed:
        with open(path, "w", encoding="utf-8", newline="") as fh:
            fh.write("".join(lines))
        logger.info("Patched %s", path)
    return changed


def _write_lines(path: str, lines: List[str]) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("\n".join(lines) + "\n")
    logger.info("Created %s", path)


def _patch_common(install_dir: str) -> None:
    patch_config_file(
        os.path.join(install_dir, "mkspecs", "qconfig.pri"),
        [
            ("QT_EDITION =", " OpenSource"),
            ("QT_LICHECK =", ""),
        ],
    )
    _write_lines(os.path.join(install_dir, "bin", "qt.conf"), ["[Paths]", "Prefix=.."])


def _patch_autonomous(install: AutonomousInstallation) -> None:
    if install.host.is_windows:
        bin_dir = os.path.join(install.path, "bin")
        _write_lines(
            os.path.join(bin_dir, "qtenv2.bat"),
            [
                "@echo off",
                "echo Setting up environment for Qt usage...",
                f"set PATH={bin_dir};%PATH%",
                f"cd /D {install.path}",
                "echo Remember to call vcvarsall.bat to complete environment setup!",
            ],
        )

    pkgconfig_dir = os.path.join(install.path, "lib", "pkgconfig")
    for pc_path in sorted(glob.glob(os.path.join(glob.escape(pkgconfig_dir), "*.pc"))):
        patch_config_file(pc_path, [("prefix=", install.path)])


def _patch_launcher_scripts(install: CrossCompileInstallation, version: QtVersion) -> None:
    names = ["qmake", "qtpaths", f"qmake{version.major}", f"qtpaths{version.major}"]
    correct_value = os.path.join(install.desktop_path, "")
    for name in names:
        for extension in ("", ".bat"):
            script_path = os.path.join(install.path, "bin", name + extension)
            if not os.path.isfile(script_path):
                continue
            with open(script_path, "r", encoding="utf-8", newline="") as fh:
                content = fh.read()
            patched = content
            for placeholder in BUILD_PLACEHOLDERS:
                patched = patched.replace(placeholder, correct_value)
                patched = patched.replace(placeholder.replace("/", "\\"), correct_value)
            if patched != content:
                with open(script_path, "w", encoding="utf-8", newline="") as fh:
                    fh.write(patched)
                logger.info("Patched %s", script_path)


def _add_execute_permissions(install_dir: str) -> None:
    for relative in WASM_EXECUTABLE_TOOLS:
        tool_path = os.path.join(install_dir, *relative.split("/"))
        if not os.path.isfile(tool_path):
            continue
        mode = os.stat(tool_path).st_mode
        os.chmod(tool_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.info("Made executable %s", tool_path)


def _patch_cross_compile(install: CrossCompileInstallation, version: QtVersion) -> None:
    if version.major >= 6:
        patch_config_file(
            os.path.join(install.path, "bin", "target_qt.conf"),
            [
                ("HostData=", f"../{os.path.basename(install.path)}"),
                ("HostPrefix=", f"../../{os.path.basename(install.desktop_path)}"),
                ("HostLibraryExecutables=", "./bin" if install.desktop_host.is_windows else "./libexec"),
            ],
        )
    _patch_launcher_scripts(install, version)
    if install.arch.value == WASM_SINGLETHREAD_ARCH and sys.platform != "win32":
        _add_execute_permissions(install.path)


def patch_install(install: Installation, version: QtVersion) -> None:
    """Apply every post-extraction patch relevant to ``install``."""
    _patch_common(install.path)
    if isinstance(install, AutonomousInstallation):
        _patch_autonomous(install)
    elif isinstance(install, CrossCompileInstallation):
        _patch_cross_compile(install, version)
    else:
        raise TypeError(f"Unknown installation kind: {type(install).__name__}")
