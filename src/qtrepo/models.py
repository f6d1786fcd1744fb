"""Data models for Qt hosts, targets, versions and the parsed package index."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from packaging.version import Version

from constants import Constants
from common.errors import Ambiguous, InvalidArgument, NotFound

_HOST_URL_COMPONENTS: Dict[str, str] = {
    "windows": "windows_x86",
    "windows_arm64": "windows_arm64",
    "linux": "linux_x64",
    "linux_arm64": "linux_arm64",
    "mac": "mac_x64",
    "all_os": "all_os",
}

_TARGETS = ("desktop", "wasm", "android", "ios")


@dataclass(frozen=True)
class QtHost:
    """Host operating system the binaries run on."""
    value: str

    def __post_init__(self) -> None:
        if self.value not in _HOST_URL_COMPONENTS:
            raise InvalidArgument(f"Host value is not recognized: {self.value}")

    def __str__(self) -> str:
        return self.value

    def to_url_component(self) -> str:
        return _HOST_URL_COMPONENTS[self.value]

    @property
    def is_windows(self) -> bool:
        return self.value.startswith("windows")

    @property
    def is_linux(self) -> bool:
        return self.value.startswith("linux")

    @property
    def is_mac(self) -> bool:
        return self.value.startswith("mac")

    @property
    def is_any_os(self) -> bool:
        return self.value == "all_os"


@dataclass(frozen=True)
class QtTarget:
    """Platform the binaries build for."""
    value: str

    def __post_init__(self) -> None:
        if self.value not in _TARGETS:
            raise InvalidArgument(f"Target value is not recognized: {self.value}")

    def __str__(self) -> str:
        return self.value

    def to_url_component(self) -> str:
        return self.value


@dataclass(frozen=True)
class QtArch:
    """Architecture identifier as used in package names, e.g. ``linux_gcc_64``."""
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class QtVersion:
    """A three-part Qt version number."""
    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, value: str) -> "QtVersion":
        parts = value.split(".")
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            raise InvalidArgument(f"Invalid version number: {value}")
        return cls(int(parts[0]), int(parts[1]), int(parts[2]))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def no_dots(self) -> str:
        return f"{self.major}{self.minor}{self.patch}"

    def as_version(self) -> Version:
        return Version(str(self))

    def at_least(self, other: str) -> bool:
        return self.as_version() >= Version(other)

    def to_url_component(self, variant: str) -> str:
        """Directory name(s) of this version inside a host/target repository.

        From 6.8.0 onward the variant directory is nested under a plain
        version directory.
        """
        dir_for_version = f"qt{self.major}_{self.no_dots()}"
        dir_for_variant = f"{dir_for_version}_{variant}" if variant else dir_for_version
        if self.at_least("6.8.0"):
            return f"{dir_for_version}/{dir_for_variant}"
        return dir_for_variant


@dataclass(frozen=True)
class Archive:
    """A single downloadable 7z archive of a package."""
    identifier: str
    file_name: str
    target_directory_components: Tuple[str, ...] = ()

    def matches_short_name(self, short_name: str) -> bool:
        """True if the identifier starts with ``<short_name>-``."""
        return self.identifier.startswith(f"{short_name}-")


@dataclass(frozen=True)
class Package:
    """A ``PackageUpdate`` entry of the index."""
    name: str
    archives: Tuple[Archive, ...] = ()

    @property
    def name_segments(self) -> List[str]:
        return self.name.split(".")

    def name_without_version(self) -> str:
        """Package name without the ``<vendor>.<namespace>.<edition>`` prefix."""
        return ".".join(self.name_segments[3:])

    def arch_suffix(self) -> str:
        return self.name_segments[-1]


@dataclass(frozen=True)
class QtModule:
    """An optional component resolved for one architecture."""
    name: str
    package: Package

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class QtUpdate:
    """The parsed package index of one repository directory."""
    packages: Tuple[Package, ...] = field(default_factory=tuple)

    def base_packages(self) -> List[Package]:
        """Packages with exactly four name segments carrying a qtbase archive."""
        return [
            p for p in self.packages
            if len(p.name_segments) == 4
            and any(a.matches_short_name(Constants.BASE_SHORT_NAME) for a in p.archives)
        ]

    def base_package(self, arch: QtArch) -> Package:
        """The unique base package for ``arch``.

        Raises:
            NotFound: If no base package ends with ``.<arch>``.
            Ambiguous: If more than one does.
        """
        matches = [p for p in self.base_packages() if p.name.endswith(f".{arch.value}")]
        if not matches:
            raise NotFound(f'No base package found for "{arch.value}".')
        if len(matches) > 1:
            raise Ambiguous(f'Multiple base packages found for "{arch.value}".')
        return matches[0]

    def architectures(self) -> List[QtArch]:
        return [QtArch(p.arch_suffix()) for p in self.base_packages()]

    def modules(self, arch: QtArch) -> List[QtModule]:
        """Module view for ``arch`` in package insertion order.

        The group qualifier (``addons``) at segment 3 is skipped when present.
        """
        modules = []
        for package in self.packages:
            segments = package.name_segments
            if len(segments) < 5 or segments[-1] != arch.value:
                continue
            has_group = len(segments) >= 6 and segments[3] in Constants.MODULE_GROUP_NAMES
            start = 4 if has_group else 3
            modules.append(QtModule(".".join(segments[start:-1]), package))
        return modules

    def modules_by_name(self, arch: QtArch) -> Dict[str, QtModule]:
        return {m.name: m for m in self.modules(arch)}

    def packages_for_arch(self, arch: QtArch) -> List[Package]:
        return [p for p in self.packages if p.name.endswith(f".{arch.value}")]
