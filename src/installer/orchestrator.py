"""Download/extract orchestration for an install run.

Runs the planned downloads, then the extractions, each as a bounded
parallel map, and patches the finished trees. Any failure removes every
directory the run created.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from typing import Callable, Iterable, List, Optional, TypeVar

from constants import Constants
from common import http_client
from common.cancellation import CancelToken
from common.errors import AlreadyInstalled, AmbiguousLayout, HashMismatch
from common.logging_utils import extra_context, is_debug_enabled, Timer
from archive import sevenzip
from installer.patcher import AutonomousInstallation, CrossCompileInstallation, patch_install
from installer.planner import Download, InstallPlan, InstallRequest, plan_install
from qtrepo.catalog import UpdateCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunState(Enum):
    """Lifecycle of an install run."""
    PLANNED = "planned"
    DOWNLOADING = "downloading"
    DOWNLOADED = "downloaded"
    EXTRACTING = "extracting"
    PATCHING = "patching"
    DONE = "done"
    FAILED = "failed"


class CleanupGuard:
    """Owns a list of directories and deletes whatever is still listed on exit.

    Paths that must survive a successful run are released before exit.
    Deletion failures are logged and never raised.
    """

    def __init__(self) -> None:
        self._paths: List[str] = []

    def add(self, path: str) -> None:
        if path not in self._paths:
            self._paths.append(path)

    def release(self, path: str) -> None:
        if path in self._paths:
            self._paths.remove(path)

    @property
    def pending(self) -> List[str]:
        return list(self._paths)

    def __enter__(self) -> "CleanupGuard":
        return self

    def __exit__(self, *exc_info) -> bool:
        for path in self._paths:
            try:
                if os.path.isdir(path):
                    shutil.rmtree(path)
            except OSError as exc:
                logger.warning("Failed to delete directory %s: %s", path, exc)
        self._paths.clear()
        return False


def run_parallel(
    func: Callable[[T, CancelToken], None],
    items: Iterable[T],
    max_workers: int,
    cancel: Optional[CancelToken] = None,
) -> None:
    """Apply ``func`` to every item on a bounded worker pool.

    The first failure stops the remaining workers through a pool-local
    token and is re-raised once every worker has returned.
    """
    pool_token = CancelToken(parent=cancel)
    first_error: Optional[BaseException] = None
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(func, item, pool_token) for item in items]
        for future in as_completed(futures):
            if future.cancelled() or first_error is not None:
                continue
            exc = future.exception()
            if exc is None:
                continue
            first_error = exc
            pool_token.cancel()
            for pending in futures:
                pending.cancel()
    if first_error is not None:
        raise first_error


class InstallRun:
    """One install-qt invocation: plan, download, extract, patch."""

    def __init__(
        self,
        request: InstallRequest,
        output_dir: Optional[str] = None,
        cancel: Optional[CancelToken] = None,
        cache: Optional[UpdateCache] = None,
    ) -> None:
        self.request = request
        self.output_dir = os.path.abspath(output_dir or Constants.OUTPUT_DIR)
        self.cancel = cancel or CancelToken()
        self.cache = cache or UpdateCache(no_hash=request.no_hash, cancel=self.cancel)
        self.state = RunState.PLANNED
        self._create_directory_lock = threading.Lock()

    def _set_state(self, state: RunState) -> None:
        if is_debug_enabled(logger):
            logger.debug(
                "Run state change",
                extra=extra_context(
                    event="state", component="orchestrator",
                    action=state.value, outcome=self.state.value,
                ),
            )
        self.state = state

    def _download(self, download: Download, download_dir: str, cancel: CancelToken) -> None:
        remote = download.mirror_url()
        local_path = download.local_path(download_dir)
        expected_hash = None
        if not self.request.no_hash:
            expected_hash = http_client.fetch_published_hash(remote, cancel=cancel)
        with self._create_directory_lock:
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
        try:
            with open(local_path, "wb") as fh:
                http_client.fetch_verified(
                    str(remote), fh, expected_hash,
                    verify=not self.request.no_hash, cancel=cancel,
                )
        except HashMismatch:
            os.remove(local_path)
            raise
        logger.info("Downloaded %s", download.archive.file_name)

    def _extract(self, download: Download, download_dir: str, cancel: CancelToken) -> None:
        archive_path = download.local_path(download_dir)
        components = download.archive.target_directory_components
        target_dir = os.path.join(self.output_dir, *components) if components else self.output_dir
        sevenzip.extract(archive_path, target_dir, self._create_directory_lock, cancel)
        os.remove(archive_path)
        logger.info("Extracted %s", download.archive.file_name)

    def get_arch_directory_name(self, download: Download, download_dir: str) -> str:
        """Leaf directory name of an install, e.g. ``gcc_64``.

        Taken from the Extract target when it names one, otherwise from the
        unique ``<version>/<name>/bin`` directory inside the base archive.

        Raises:
            AmbiguousLayout: If zero or several candidates are found.
        """
        components = list(download.archive.target_directory_components)
        if len(components) >= 2:
            return components[1]
        version_dir = str(self.request.version)
        candidates: List[str] = []
        for entry in sevenzip.list_entries(download.local_path(download_dir)):
            if not entry.is_dir:
                continue
            all_components = components + entry.name.split("/")
            if (
                len(all_components) == 3
                and all_components[0] == version_dir
                and all_components[-1] == "bin"
                and all_components[1] not in candidates
            ):
                candidates.append(all_components[1])
        if len(candidates) != 1:
            raise AmbiguousLayout(
                f"Unable to locate bin directory in archive {download.archive.file_name}."
            )
        return candidates[0]

    def _install_directory(self, leaf_name: str) -> str:
        return os.path.join(self.output_dir, str(self.request.version), leaf_name)

    def _patch(self, plan: InstallPlan, install_dir: str, desktop_install_dir: Optional[str]) -> None:
        version = self.request.version
        if desktop_install_dir is None or plan.desktop is None:
            patch_install(AutonomousInstallation(install_dir, self.request.host), version)
            return
        patch_install(
            CrossCompileInstallation(install_dir, plan.arch, desktop_install_dir, plan.desktop.host),
            version,
        )
        patch_install(AutonomousInstallation(desktop_install_dir, plan.desktop.host), version)

    def run(self) -> None:
        """Execute the whole run.

        Raises:
            AlreadyInstalled: If an install directory exists already.
            QtFetchError: Any planner, fetch, archive or patch failure.
        """
        try:
            with Timer() as t:
                plan = plan_install(self.request, self.cache)
                self._execute(plan)
            logger.info("Finished in %.3f seconds", t.duration())
        except BaseException:
            self._set_state(RunState.FAILED)
            raise

    def _execute(self, plan: InstallPlan) -> None:
        with CleanupGuard() as guard:
            download_dir = tempfile.mkdtemp(prefix="qtfetch-")
            guard.add(download_dir)

            self._set_state(RunState.DOWNLOADING)
            run_parallel(
                lambda d, tok: self._download(d, download_dir, tok),
                plan.downloads,
                Constants.DOWNLOAD_CONCURRENCY,
                self.cancel,
            )
            self._set_state(RunState.DOWNLOADED)

            install_dir = self._install_directory(
                self.get_arch_directory_name(plan.base_download, download_dir)
            )
            desktop_install_dir = None
            if plan.desktop_base_download is not None:
                desktop_install_dir = self._install_directory(
                    self.get_arch_directory_name(plan.desktop_base_download, download_dir)
                )
            for directory in (install_dir, desktop_install_dir):
                if directory is not None and os.path.exists(directory):
                    raise AlreadyInstalled(f"Install directory already exists: {directory}")

            guard.add(install_dir)
            if desktop_install_dir is not None:
                guard.add(desktop_install_dir)

            self._set_state(RunState.EXTRACTING)
            run_parallel(
                lambda d, tok: self._extract(d, download_dir, tok),
                plan.downloads,
                Constants.EXTRACT_CONCURRENCY,
                self.cancel,
            )

            self._set_state(RunState.PATCHING)
            self._patch(plan, install_dir, desktop_install_dir)

            guard.release(install_dir)
            if desktop_install_dir is not None:
                guard.release(desktop_install_dir)
            self._set_state(RunState.DONE)
