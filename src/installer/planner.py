"""Resolution planner: turns a user selection into the list of archives to fetch."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from constants import Constants
from common.errors import Ambiguous, ExtensionNotFound, HttpError, ModuleNotFound, NotFound
from common.http_client import MirrorUrl
from qtrepo.catalog import UpdateCache
from qtrepo.helpers import (
    DESKTOP,
    AutoDesktopConfiguration,
    get_auto_desktop_configuration,
    get_default_arch,
    get_extension_directory_url,
    get_update_directory_url,
)
from qtrepo.models import Archive, Package, QtArch, QtHost, QtModule, QtTarget, QtUpdate, QtVersion

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Download:
    """One archive to fetch, together with the repository directory it lives in."""
    archive: Archive
    package: Package
    update_dir_url: MirrorUrl

    def mirror_url(self) -> MirrorUrl:
        return self.update_dir_url.join(f"{self.package.name}/{self.archive.file_name}")

    def url(self) -> str:
        return str(self.mirror_url())

    def local_path(self, directory: str) -> str:
        """Staging path of the downloaded archive below ``directory``."""
        return os.path.join(directory, self.package.name_without_version(), self.archive.identifier)

    def key(self) -> Tuple[str, str, str]:
        return (str(self.update_dir_url), self.package.name, self.archive.identifier)


@dataclass
class InstallRequest:
    """User selection for an install run."""
    host: QtHost
    target: QtTarget
    version: QtVersion
    arch: Optional[QtArch] = None
    modules: List[str] = field(default_factory=list)
    extensions: List[str] = field(default_factory=list)
    archives: List[str] = field(default_factory=list)
    auto_desktop: bool = False
    no_hash: bool = False
    mirror: Optional[str] = None

    def resolved_arch(self) -> QtArch:
        return self.arch or get_default_arch(self.host, self.target, self.version)


@dataclass
class InstallPlan:
    """Planner output consumed by the orchestrator."""
    arch: QtArch
    downloads: List[Download]
    base_download: Download
    desktop: Optional[AutoDesktopConfiguration] = None
    desktop_base_download: Optional[Download] = None


def desktop_installs_same_modules(target: QtTarget) -> bool:
    """Whether the companion desktop install also receives the requested modules.

    Only enabled for wasm, matching the behaviour users of other Qt
    installers rely on.
    """
    # TODO: confirm with Qt packaging whether android/ios companions need the modules too.
    return target.value == "wasm"


@dataclass
class _Side:
    host: QtHost
    arch: QtArch
    update_dir_url: MirrorUrl
    update: QtUpdate
    base_package: Package


class _DownloadList:
    """Ordered, de-duplicated accumulation of downloads."""

    def __init__(self) -> None:
        self.items: List[Download] = []
        self._seen: Set[Tuple[str, str, str]] = set()

    def add_package(
        self,
        package: Package,
        update_dir_url: MirrorUrl,
        archive_filters: Optional[List[str]] = None,
    ) -> None:
        for archive in package.archives:
            if archive_filters and not _archive_selected(archive, archive_filters):
                continue
            download = Download(archive, package, update_dir_url)
            if download.key() in self._seen:
                continue
            self._seen.add(download.key())
            self.items.append(download)


def _archive_selected(archive: Archive, archive_filters: List[str]) -> bool:
    """Filters narrow auxiliary archives but never drop the qtbase archive."""
    if archive.matches_short_name(Constants.BASE_SHORT_NAME):
        return True
    return any(archive.matches_short_name(f) for f in archive_filters)


def _fetch_extension(
    cache: UpdateCache,
    host: QtHost,
    extension: str,
    version: QtVersion,
    arch: QtArch,
    mirror: Optional[str],
) -> Optional[Tuple[MirrorUrl, List[Package]]]:
    """Extension packages for ``arch``; None when the extension has nothing for it."""
    url = get_extension_directory_url(host, extension, version, arch, mirror)
    try:
        update = cache.get(url)
    except HttpError as exc:
        if exc.status_code == 404:
            logger.info("Extension %s has no packages for %s", extension, arch)
            return None
        raise
    packages = update.packages_for_arch(arch)
    if not packages:
        return None
    return url, packages


def _load_side(
    cache: UpdateCache,
    host: QtHost,
    target: QtTarget,
    version: QtVersion,
    arch: QtArch,
    mirror: Optional[str],
) -> _Side:
    url = get_update_directory_url(host, target, version, arch, mirror)
    update = cache.get(url)
    return _Side(host, arch, url, update, update.base_package(arch))


def _find_base_download(downloads: List[Download], package: Package) -> Download:
    matches = [
        d for d in downloads
        if d.package == package and d.archive.matches_short_name(Constants.BASE_SHORT_NAME)
    ]
    if not matches:
        raise NotFound(f"No {Constants.BASE_SHORT_NAME} archive in {package.name}.")
    if len(matches) > 1:
        raise Ambiguous(f"Multiple {Constants.BASE_SHORT_NAME} archives in {package.name}.")
    return matches[0]


def plan_install(request: InstallRequest, cache: UpdateCache) -> InstallPlan:
    """Compute every download needed for the primary and companion installs.

    Raises:
        ModuleNotFound: If a requested module was found in no consulted catalog.
        ExtensionNotFound: If a requested extension was found for no install.
    """
    arch = request.resolved_arch()
    logger.info(
        "Selected configuration: %s %s %s %s",
        request.host, request.target, request.version, arch,
    )
    primary = _load_side(cache, request.host, request.target, request.version, arch, request.mirror)

    desktop_config = None
    desktop = None
    if request.auto_desktop:
        desktop_config = get_auto_desktop_configuration(
            request.host, request.target, request.version, arch
        )
        if desktop_config is not None:
            logger.info(
                "Desktop configuration: %s desktop %s %s",
                desktop_config.host, request.version, desktop_config.arch,
            )
            desktop = _load_side(
                cache, desktop_config.host, DESKTOP, request.version,
                desktop_config.arch, request.mirror,
            )

    downloads = _DownloadList()
    found_modules: Set[str] = set()
    found_extensions: Set[str] = set()

    def add_selection(side: _Side, archive_filters: Optional[List[str]]) -> None:
        downloads.add_package(side.base_package, side.update_dir_url, archive_filters)
        modules: Dict[str, QtModule] = side.update.modules_by_name(side.arch)
        for name in request.modules:
            module = modules.get(name)
            if module is None:
                continue
            found_modules.add(name)
            downloads.add_package(module.package, side.update_dir_url)
        for name in request.extensions:
            found = _fetch_extension(cache, side.host, name, request.version, side.arch, request.mirror)
            if found is None:
                continue
            found_extensions.add(name)
            ext_url, packages = found
            for package in packages:
                downloads.add_package(package, ext_url)

    add_selection(primary, request.archives)
    if desktop is not None:
        if desktop_installs_same_modules(request.target):
            add_selection(desktop, None)
        else:
            downloads.add_package(desktop.base_package, desktop.update_dir_url)

    missing_modules = [m for m in request.modules if m not in found_modules]
    if missing_modules:
        raise ModuleNotFound(missing_modules)
    missing_extensions = [e for e in request.extensions if e not in found_extensions]
    if missing_extensions:
        raise ExtensionNotFound(missing_extensions)

    base_download = _find_base_download(downloads.items, primary.base_package)
    desktop_base_download = (
        _find_base_download(downloads.items, desktop.base_package) if desktop is not None else None
    )
    logger.debug("Planned %d downloads", len(downloads.items))
    return InstallPlan(
        arch=arch,
        downloads=downloads.items,
        base_download=base_download,
        desktop=desktop_config if desktop is not None else None,
        desktop_base_download=desktop_base_download,
    )
