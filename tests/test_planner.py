"""Tests for the resolution planner."""

from unittest.mock import patch

import pytest

from common.errors import ExtensionNotFound, HttpError, InvalidArgument, ModuleNotFound
from common.http_client import MirrorUrl
from installer.planner import Download, InstallRequest, desktop_installs_same_modules, plan_install
from qtrepo.models import Archive, Package, QtArch, QtHost, QtTarget, QtUpdate, QtVersion

LINUX_682 = "online/qtsdkrepository/linux_x64/desktop/qt6_682/qt6_682/"
WASM_682 = "online/qtsdkrepository/all_os/wasm/qt6_682/qt6_682_wasm_singlethread/"
ANDROID_682 = "online/qtsdkrepository/linux_x64/android/qt6_682/qt6_682_arm64_v8a/"
WEBENGINE_682 = "online/qtsdkrepository/linux_x64/extensions/qtwebengine/682/x86_64/"


def _package(name, *identifiers, target=()):
    return Package(
        name=name,
        archives=tuple(Archive(i, "6.8.2-0-" + i, target) for i in identifiers),
    )


def _linux_desktop():
    return QtUpdate(packages=(
        _package(
            "qt.qt6.682.linux_gcc_64",
            "qtbase-x.7z", "foo-y.7z", "bar-z.7z",
            target=("6.8.2", "gcc_64"),
        ),
        _package("qt.qt6.682.addons.qtcharts.linux_gcc_64", "qtcharts-x.7z"),
        _package("qt.qt6.682.addons.qtcharts.win64_mingw", "qtcharts-w.7z"),
    ))


def _wasm():
    return QtUpdate(packages=(
        _package("qt.qt6.682.wasm_singlethread", "qtbase-wasm.7z"),
        _package("qt.qt6.682.addons.qtcharts.wasm_singlethread", "qtcharts-wasm.7z"),
    ))


def _android():
    return QtUpdate(packages=(
        _package("qt.qt6.682.android_arm64_v8a", "qtbase-android.7z"),
        _package("qt.qt6.682.addons.qtcharts.android_arm64_v8a", "qtcharts-android.7z"),
    ))


class FakeCache:
    """Catalog lookup keyed by repository path; unknown paths are 404s."""

    def __init__(self, catalogs):
        self.catalogs = catalogs
        self.requested = []

    def get(self, url):
        self.requested.append(url.path)
        if url.path not in self.catalogs:
            raise HttpError(str(url), status_code=404)
        return self.catalogs[url.path]


def _linux_request(**kwargs):
    return InstallRequest(
        host=QtHost("linux"),
        target=QtTarget("desktop"),
        version=QtVersion.parse("6.8.2"),
        **kwargs,
    )


def _identifiers(plan):
    return [d.archive.identifier for d in plan.downloads]


class TestDownload:
    """Download addressing."""

    def test_url_and_local_path(self, tmp_path):
        """Archives live under their package directory."""
        package = _package("qt.qt6.682.linux_gcc_64", "qtbase-x.7z")
        download = Download(
            package.archives[0], package, MirrorUrl("https://download.qt.io", LINUX_682)
        )
        assert download.url() == (
            "https://download.qt.io/" + LINUX_682 + "qt.qt6.682.linux_gcc_64/6.8.2-0-qtbase-x.7z"
        )
        assert download.local_path(str(tmp_path)) == str(tmp_path / "linux_gcc_64" / "qtbase-x.7z")


class TestPlanInstall:
    """Primary install planning."""

    def test_default_arch_and_all_base_archives(self):
        """Without filters every base archive is planned."""
        plan = plan_install(_linux_request(), FakeCache({LINUX_682: _linux_desktop()}))
        assert plan.arch.value == "linux_gcc_64"
        assert _identifiers(plan) == ["qtbase-x.7z", "foo-y.7z", "bar-z.7z"]
        assert plan.base_download.archive.identifier == "qtbase-x.7z"
        assert plan.desktop is None

    def test_archive_filter_keeps_qtbase(self):
        """Filters narrow auxiliary archives; qtbase survives."""
        plan = plan_install(
            _linux_request(archives=["foo"]), FakeCache({LINUX_682: _linux_desktop()})
        )
        assert set(_identifiers(plan)) == {"qtbase-x.7z", "foo-y.7z"}

    def test_module_added(self):
        """Requested modules of the selected arch are planned."""
        plan = plan_install(
            _linux_request(modules=["qtcharts"]), FakeCache({LINUX_682: _linux_desktop()})
        )
        assert "qtcharts-x.7z" in _identifiers(plan)
        assert "qtcharts-w.7z" not in _identifiers(plan)

    def test_unknown_module(self):
        """Unknown modules are reported by name."""
        with pytest.raises(ModuleNotFound) as excinfo:
            plan_install(
                _linux_request(modules=["charts"]), FakeCache({LINUX_682: _linux_desktop()})
            )
        assert excinfo.value.names == ["charts"]

    def test_extension_added(self):
        """Extension packages for the arch come from their own catalog."""
        extension = QtUpdate(packages=(
            _package("extensions.qtwebengine.682.linux_gcc_64", "qtwebengine-x.7z"),
        ))
        plan = plan_install(
            _linux_request(extensions=["qtwebengine"]),
            FakeCache({LINUX_682: _linux_desktop(), WEBENGINE_682: extension}),
        )
        webengine = [d for d in plan.downloads if d.archive.identifier == "qtwebengine-x.7z"]
        assert len(webengine) == 1
        assert webengine[0].update_dir_url.path == WEBENGINE_682

    def test_missing_extension(self):
        """A 404 for the extension catalog means the extension is missing."""
        with pytest.raises(ExtensionNotFound) as excinfo:
            plan_install(
                _linux_request(extensions=["qtwebengine"]),
                FakeCache({LINUX_682: _linux_desktop()}),
            )
        assert excinfo.value.names == ["qtwebengine"]

    def test_extension_other_http_error_propagates(self):
        """Failures other than 404 are not treated as a missing extension."""

        class FailingCache(FakeCache):
            def get(self, url):
                if "extensions" in url.path:
                    raise HttpError(str(url), status_code=500)
                return super().get(url)

        with pytest.raises(HttpError):
            plan_install(
                _linux_request(extensions=["qtwebengine"]),
                FailingCache({LINUX_682: _linux_desktop()}),
            )

    def test_extensions_before_680(self):
        """Extensions cannot be requested for older versions."""
        request = InstallRequest(
            host=QtHost("linux"), target=QtTarget("desktop"),
            version=QtVersion.parse("6.7.3"), extensions=["qtpdf"],
        )
        old = "online/qtsdkrepository/linux_x64/desktop/qt6_673/"
        update = QtUpdate(packages=(_package("qt.qt6.673.linux_gcc_64", "qtbase-x.7z"),))
        with pytest.raises(InvalidArgument):
            plan_install(request, FakeCache({old: update}))


class TestAutoDesktop:
    """Companion desktop planning."""

    def test_same_modules_policy(self):
        """Only wasm companions receive the requested modules."""
        assert desktop_installs_same_modules(QtTarget("wasm"))
        assert not desktop_installs_same_modules(QtTarget("android"))

    @patch("qtrepo.helpers.detect_machine_host", return_value=QtHost("linux"))
    def test_wasm_companion_gets_modules(self, _mock_detect):
        """The desktop companion of wasm installs the same modules."""
        request = InstallRequest(
            host=QtHost("all_os"), target=QtTarget("wasm"),
            version=QtVersion.parse("6.8.2"), arch=QtArch("wasm_singlethread"),
            modules=["qtcharts"], auto_desktop=True,
        )
        plan = plan_install(request, FakeCache({WASM_682: _wasm(), LINUX_682: _linux_desktop()}))

        assert plan.desktop.host.value == "linux"
        assert plan.desktop.arch.value == "linux_gcc_64"
        assert plan.desktop_base_download.archive.identifier == "qtbase-x.7z"
        assert set(_identifiers(plan)) == {
            "qtbase-wasm.7z", "qtcharts-wasm.7z",
            "qtbase-x.7z", "foo-y.7z", "bar-z.7z", "qtcharts-x.7z",
        }

    def test_android_companion_gets_base_only(self):
        """Other companions only receive their base package."""
        request = InstallRequest(
            host=QtHost("linux"), target=QtTarget("android"),
            version=QtVersion.parse("6.8.2"), arch=QtArch("android_arm64_v8a"),
            modules=["qtcharts"], auto_desktop=True,
        )
        plan = plan_install(request, FakeCache({ANDROID_682: _android(), LINUX_682: _linux_desktop()}))

        assert "qtcharts-android.7z" in _identifiers(plan)
        assert "qtcharts-x.7z" not in _identifiers(plan)
        assert "qtbase-x.7z" in _identifiers(plan)

    def test_no_companion_without_flag(self):
        """Without auto-desktop the desktop catalog is never read."""
        request = InstallRequest(
            host=QtHost("linux"), target=QtTarget("android"),
            version=QtVersion.parse("6.8.2"), arch=QtArch("android_arm64_v8a"),
        )
        cache = FakeCache({ANDROID_682: _android()})
        plan = plan_install(request, cache)
        assert plan.desktop is None
        assert cache.requested == [ANDROID_682]
