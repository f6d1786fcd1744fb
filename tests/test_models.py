"""Tests for Qt identifiers and the parsed package index."""

import pytest

from common.errors import Ambiguous, InvalidArgument, NotFound
from qtrepo.models import Archive, Package, QtArch, QtHost, QtTarget, QtUpdate, QtVersion


def _package(name, *identifiers):
    return Package(
        name=name,
        archives=tuple(Archive(i, "6.8.2-0-" + i) for i in identifiers),
    )


def _linux_update():
    return QtUpdate(packages=(
        _package("qt.qt6.682.linux_gcc_64", "qtbase-Linux.7z", "qtsvg-Linux.7z"),
        _package("qt.qt6.682.addons.qtcharts.linux_gcc_64", "qtcharts-Linux.7z"),
        _package("qt.qt6.682.qtwaylandcompositor.linux_gcc_64", "qtwayland-Linux.7z"),
        _package("qt.qt6.682.addons.qtcharts.wasm_singlethread", "qtcharts-Wasm.7z"),
        _package("qt.qt6.682.wasm_singlethread", "qtbase-Wasm.7z"),
        _package("qt.qt6.682.src", "src.7z"),
    ))


class TestQtIdentifiers:
    """Validation of host, target and version values."""

    def test_host_url_components(self):
        """Each host maps to its repository directory name."""
        assert QtHost("windows").to_url_component() == "windows_x86"
        assert QtHost("linux").to_url_component() == "linux_x64"
        assert QtHost("mac").to_url_component() == "mac_x64"
        assert QtHost("all_os").to_url_component() == "all_os"

    def test_unknown_host_rejected(self):
        """Unknown hosts raise InvalidArgument."""
        with pytest.raises(InvalidArgument):
            QtHost("solaris")

    def test_unknown_target_rejected(self):
        """Unknown targets raise InvalidArgument."""
        with pytest.raises(InvalidArgument):
            QtTarget("winrt")

    @pytest.mark.parametrize("value", ["6.8", "6.8.2.1", "6.x.2", "", "v6.8.2"])
    def test_invalid_versions_rejected(self, value):
        """Versions must have exactly three numeric parts."""
        with pytest.raises(InvalidArgument):
            QtVersion.parse(value)

    def test_version_url_component_nested_from_680(self):
        """From 6.8.0 the variant directory sits under a plain version directory."""
        assert QtVersion.parse("6.8.2").to_url_component("") == "qt6_682/qt6_682"
        assert (
            QtVersion.parse("6.8.0").to_url_component("wasm_singlethread")
            == "qt6_680/qt6_680_wasm_singlethread"
        )
        assert QtVersion.parse("6.7.3").to_url_component("") == "qt6_673"
        assert QtVersion.parse("5.15.2").to_url_component("arm64_v8a") == "qt5_5152_arm64_v8a"

    def test_version_ordering(self):
        """Versions compare numerically, not lexically."""
        assert QtVersion.parse("6.10.0").at_least("6.8.0")
        assert not QtVersion.parse("6.7.3").at_least("6.8.0")


class TestQtUpdateBasePackage:
    """Base package lookup."""

    def test_base_package_round_trip(self):
        """Every listed architecture resolves to a base package ending with it."""
        update = _linux_update()
        for arch in update.architectures():
            assert update.base_package(arch).name.endswith("." + arch.value)

    def test_architectures(self):
        """Only four-segment packages with a qtbase archive count."""
        update = _linux_update()
        assert [a.value for a in update.architectures()] == ["linux_gcc_64", "wasm_singlethread"]

    def test_base_package_not_found(self):
        """A missing arch raises NotFound."""
        with pytest.raises(NotFound):
            _linux_update().base_package(QtArch("win64_mingw"))

    def test_base_package_ambiguous(self):
        """Two candidates for one arch raise Ambiguous."""
        update = QtUpdate(packages=(
            _package("qt.qt6.682.linux_gcc_64", "qtbase-a.7z"),
            _package("qt.qt6x.682.linux_gcc_64", "qtbase-b.7z"),
        ))
        with pytest.raises(Ambiguous):
            update.base_package(QtArch("linux_gcc_64"))

    def test_package_without_qtbase_is_not_a_base(self):
        """Four-segment packages lacking a qtbase archive are skipped."""
        update = QtUpdate(packages=(_package("qt.qt6.682.linux_gcc_64", "qtsvg-a.7z"),))
        assert update.base_packages() == []


class TestQtUpdateModules:
    """Module view of an index."""

    def test_modules_strip_addons_group(self):
        """The addons qualifier is removed from module names."""
        modules = _linux_update().modules_by_name(QtArch("linux_gcc_64"))
        assert sorted(modules) == ["qtcharts", "qtwaylandcompositor"]
        assert modules["qtcharts"].package.name == "qt.qt6.682.addons.qtcharts.linux_gcc_64"

    def test_modules_exclude_other_archs(self):
        """Packages for a different arch never appear."""
        modules = _linux_update().modules(QtArch("wasm_singlethread"))
        assert [m.name for m in modules] == ["qtcharts"]
        assert all(m.package.name.endswith(".wasm_singlethread") for m in modules)

    def test_name_without_version(self):
        """Staging directory name drops the vendor/namespace/edition prefix."""
        package = _package("qt.qt6.682.addons.qtcharts.linux_gcc_64")
        assert package.name_without_version() == "addons.qtcharts.linux_gcc_64"
