"""Qt repository layout rules: URLs, default architectures, auto-desktop selection."""
from __future__ import annotations

import logging
import platform
import sys
from dataclasses import dataclass
from typing import Optional

from constants import Constants
from common.errors import InvalidArgument
from common.http_client import MirrorUrl
from qtrepo.models import QtArch, QtHost, QtTarget, QtVersion

logger = logging.getLogger(__name__)

DESKTOP = QtTarget("desktop")
UNSPECIFIED_VARIANT = "unspecified"


@dataclass(frozen=True)
class AutoDesktopConfiguration:
    """Companion desktop installation needed by a cross-compile target."""
    host: QtHost
    arch: QtArch


def get_url_version_variant(target: QtTarget, arch: Optional[QtArch]) -> str:
    """Variant suffix of the version directory for ``target``/``arch``."""
    if target.value == "wasm":
        return arch.value if arch is not None else UNSPECIFIED_VARIANT
    if target.value == "android":
        if arch is None:
            return UNSPECIFIED_VARIANT
        prefix = "android_"
        return arch.value[len(prefix):] if arch.value.startswith(prefix) else ""
    return ""


def get_update_directory_url(
    host: QtHost,
    target: QtTarget,
    version: QtVersion,
    arch: Optional[QtArch] = None,
    mirror: Optional[str] = None,
) -> MirrorUrl:
    """Repository directory holding Updates.xml and package archives.

    Raises:
        InvalidArgument: If the target needs an arch to locate its directory.
    """
    variant = get_url_version_variant(target, arch)
    if variant == UNSPECIFIED_VARIANT:
        raise InvalidArgument("Listing architectures for this target is not supported.")
    path = (
        f"{Constants.REPOSITORY_PATH}/{host.to_url_component()}/"
        f"{target.to_url_component()}/{version.to_url_component(variant)}/"
    )
    return MirrorUrl(mirror or Constants.MIRROR, path)


def get_extension_arch_directory(arch: QtArch) -> str:
    """Architecture directory name used by the extension repositories."""
    value = arch.value
    linux_dirs = {"linux_gcc_64": "x86_64", "linux_gcc_arm64": "arm64"}
    if value in linux_dirs:
        return linux_dirs[value]
    for prefix in ("win64_", "android_"):
        if value.startswith(prefix):
            return value[len(prefix):]
    return value


def get_extension_directory_url(
    host: QtHost,
    extension: str,
    version: QtVersion,
    arch: QtArch,
    mirror: Optional[str] = None,
) -> MirrorUrl:
    """Repository directory of a separately-versioned extension (Qt >= 6.8.0)."""
    if not version.at_least("6.8.0"):
        raise InvalidArgument("Extensions are only available for Qt 6.8.0 and later.")
    path = (
        f"{Constants.REPOSITORY_PATH}/{host.to_url_component()}/extensions/"
        f"{extension}/{version.no_dots()}/{get_extension_arch_directory(arch)}/"
    )
    return MirrorUrl(mirror or Constants.MIRROR, path)


def get_default_arch(host: QtHost, target: QtTarget, version: QtVersion) -> QtArch:
    """Default architecture for a host/target/version.

    Raises:
        InvalidArgument: When there is no sensible default.
    """
    arch_value = None
    if host.value == "mac" and target.value == "ios":
        arch_value = "ios"
    elif target.value == "desktop":
        if host.value == "windows":
            arch_value = "win64_msvc2022_64" if version.at_least("6.8.0") else "win64_msvc2019_64"
        elif host.value == "windows_arm64":
            arch_value = "win64_msvc2022_arm64"
        elif host.value == "linux":
            arch_value = "linux_gcc_64" if version.at_least("6.7.0") else "gcc_64"
        elif host.value == "linux_arm64":
            arch_value = "linux_gcc_arm64"
        elif host.value == "mac":
            arch_value = "clang_64"
    if arch_value is None:
        raise InvalidArgument("You must specify an architecture for this host.")
    return QtArch(arch_value)


def detect_machine_host() -> QtHost:
    """Host value matching the running machine."""
    machine = platform.machine().lower()
    is_arm = machine in ("arm64", "aarch64")
    is_x64 = machine in ("x86_64", "amd64")
    if sys.platform == "win32":
        if is_x64:
            return QtHost("windows")
        if is_arm:
            return QtHost("windows_arm64")
    elif sys.platform.startswith("linux"):
        if is_x64:
            return QtHost("linux")
        if is_arm:
            return QtHost("linux_arm64")
    elif sys.platform == "darwin":
        return QtHost("mac")
    raise InvalidArgument(f"Unsupported machine: {sys.platform} {machine}")


def get_auto_desktop_configuration(
    host: QtHost, target: QtTarget, version: QtVersion, arch: QtArch
) -> Optional[AutoDesktopConfiguration]:
    """Companion desktop installation for a cross-compile target, if any.

    An ``all_os`` host is replaced by the detected running host.
    """
    desktop_host = detect_machine_host() if host.is_any_os else host
    desktop_arch = None
    if target.value == "desktop" and desktop_host.value == "windows":
        arm_suffix = "_arm64_cross_compiled" if version.at_least("6.8.0") else "_arm64"
        if arch.value.endswith(arm_suffix):
            desktop_arch = QtArch(f"{arch.value[:-len(arm_suffix)]}_64")
    elif target.value == "ios" and desktop_host.value == "mac":
        desktop_arch = get_default_arch(desktop_host, DESKTOP, version)
    elif target.value in ("wasm", "android"):
        if desktop_host.value == "windows":
            desktop_arch = QtArch("win64_mingw")
        else:
            desktop_arch = get_default_arch(desktop_host, DESKTOP, version)
    if desktop_arch is None:
        return None
    return AutoDesktopConfiguration(desktop_host, desktop_arch)
