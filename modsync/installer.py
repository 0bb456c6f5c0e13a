"""Applies a manifest to an installation root, rolling back on failure.

A run either takes the config-only fast path (write config files, nothing
else) or removes stale addons and then downloads new and updated ones before
writing config files. Every path written during the run goes into a ledger;
if anything fails or the run is cancelled, the ledger drives the rollback and
the original error is re-raised wrapped in InstallRolledBackError.

Rollback only deletes files created in this run. Files overwritten in place
keep their new content.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Optional

import requests

from .categories import CategoryIndex
from .config import DISABLED_SUFFIX, DOWNLOAD_WORKERS, STATE_DIR_NAME
from .diff import ManifestDiff, compute_diff
from .download import create_session, fetch_and_store, write_bytes
from .errors import (
    FilesystemError,
    InstallCancelledError,
    InstallRolledBackError,
    ModsyncError,
)
from .models import Addon, Category, ConfigFile, Manifest
from .progress import NullObserver, ProgressObserver, notify

logger = logging.getLogger(__name__)


class InstallState(str, Enum):
    INIT = "init"
    CONFIG_ONLY = "config_only"
    REMOVING = "removing"
    INSTALLING = "installing"
    DONE = "done"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class CancelRequested(ModsyncError):
    def __init__(self) -> None:
        super().__init__("Install cancelled by user")


class InstallLedger:
    """Append-only record of the paths written during one run."""

    def __init__(self) -> None:
        self._paths: list[Path] = []
        self._lock = threading.Lock()

    def record(self, path: Path) -> None:
        with self._lock:
            self._paths.append(Path(path))

    def paths(self) -> list[Path]:
        with self._lock:
            return list(self._paths)

    def clear(self) -> None:
        with self._lock:
            self._paths.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


@dataclass
class InstallReport:
    installed: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)
    diff: Optional[ManifestDiff] = None
    config_only: bool = False


@dataclass
class _Unit:
    message: str
    run: Callable[[], Path]


def config_destination(root: Path, relative_path: str) -> Path:
    """Absolute destination of a config file, refusing paths that leave ``root``."""
    parts = PurePosixPath(relative_path).parts
    dest = root.joinpath(*parts)
    if parts and parts[0] == STATE_DIR_NAME:
        raise FilesystemError(dest, "Config path points into the install record directory")
    try:
        dest.resolve().relative_to(root.resolve())
    except ValueError:
        raise FilesystemError(dest, "Config path escapes the installation root") from None
    return dest


class Installer:
    """One install run against one root. Create a new Installer per run."""

    def __init__(
        self,
        root: Path,
        *,
        observer: Optional[ProgressObserver] = None,
        session: Optional[requests.Session] = None,
        workers: int = DOWNLOAD_WORKERS,
        cancel_event: Optional[threading.Event] = None,
        fetch: Callable[..., Path] = fetch_and_store,
    ) -> None:
        self.root = Path(root)
        self.observer = observer if observer is not None else NullObserver()
        self.session = session
        self.workers = max(1, workers)
        self.cancel_event = cancel_event
        self.fetch = fetch
        self.ledger = InstallLedger()
        self.state = InstallState.INIT

    # ───────────────────────────────
    # Entry point
    # ───────────────────────────────
    def install(
        self,
        old_manifest: Optional[Manifest],
        new_manifest: Manifest,
        config_files: Iterable[ConfigFile] = (),
    ) -> InstallReport:
        if self.state is not InstallState.INIT:
            raise RuntimeError("Installer instances are single-use")
        config_files = list(config_files)
        report = InstallReport(config_only=new_manifest.is_config_only)
        owns_session = self.session is None
        if owns_session:
            self.session = create_session()
        try:
            if new_manifest.is_config_only:
                self._set_state(InstallState.CONFIG_ONLY)
                self._check_cancelled()
                self._run_units(self._config_units(config_files), total=len(config_files))
            else:
                diff = compute_diff(old_manifest, new_manifest)
                report.diff = diff
                logger.info("Applying %s", diff)
                units = self._addon_units(new_manifest, diff)
                config_units = self._config_units(config_files)
                total = len(units) + len(config_units)
                self._set_state(InstallState.REMOVING)
                report.removed = self._remove_stale(old_manifest, diff, total)
                self._set_state(InstallState.INSTALLING)
                completed = self._run_units(units, total=total)
                self._run_units(config_units, total=total, completed=completed)
        except (CancelRequested, KeyboardInterrupt) as exc:
            failures = self._rollback()
            raise InstallCancelledError(exc, failures) from exc
        except Exception as exc:
            failures = self._rollback()
            raise InstallRolledBackError(exc, failures) from exc
        finally:
            if owns_session:
                self.session.close()
                self.session = None
        report.installed = self.ledger.paths()
        self.ledger.clear()
        self._set_state(InstallState.DONE)
        logger.info("Install complete: %d file(s) written, %d removed", len(report.installed), len(report.removed))
        return report

    # ───────────────────────────────
    # Removal phase
    # ───────────────────────────────
    def _remove_stale(self, old_manifest: Optional[Manifest], diff: ManifestDiff, total: int) -> list[Path]:
        if old_manifest is None:
            return []
        old_index = CategoryIndex(old_manifest)
        stale: list[Addon] = list(diff.to_remove)
        for addon in diff.to_update:
            entry = old_index.lookup(addon.project_id)
            if entry is not None:
                stale.append(entry[1])
        removed: list[Path] = []
        for addon in stale:
            self._check_cancelled()
            category = old_index.category_of(addon)
            removed.extend(self._delete_installed(category, addon))
            notify(self.observer, 0, total, f"Removed {category.label}: {addon.name}")
        return removed

    def _delete_installed(self, category: Category, addon: Addon) -> list[Path]:
        """Delete the recorded file of ``addon`` and its disabled variant, if present."""
        folder = self.root / category.value
        removed = []
        for name in (addon.filename, addon.filename + DISABLED_SUFFIX):
            path = folder / name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise FilesystemError(path, f"Failed to remove file ({exc.strerror or exc})") from exc
            logger.info("Removed %s", path)
            removed.append(path)
        return removed

    # ───────────────────────────────
    # Installation phase
    # ───────────────────────────────
    def _addon_units(self, new_manifest: Manifest, diff: ManifestDiff) -> list[_Unit]:
        new_index = CategoryIndex(new_manifest)
        units = []
        for _, addon in diff.scheduled():
            if addon.is_disabled:
                logger.debug("Skipping disabled addon %s", addon.name)
                continue
            category = new_index.category_of(addon)
            dest = self.root / category.value / addon.filename
            units.append(_Unit(f"Installed {category.label}: {addon.name}", self._download_unit(addon, dest)))
        for addon in diff.unchanged:
            logger.debug("Keeping %s %s", addon.name, addon.version)
        return units

    def _download_unit(self, addon: Addon, dest: Path) -> Callable[[], Path]:
        def run() -> Path:
            logger.info("Downloading %s %s", addon.name, addon.version)
            return self.fetch(addon.download_url, dest, addon.sha256, session=self.session)

        return run

    def _config_units(self, config_files: list[ConfigFile]) -> list[_Unit]:
        units = []
        for config in config_files:
            dest = config_destination(self.root, config.relative_path)
            units.append(_Unit(f"Installed config: {config.relative_path}", self._write_unit(config, dest)))
        return units

    @staticmethod
    def _write_unit(config: ConfigFile, dest: Path) -> Callable[[], Path]:
        def run() -> Path:
            write_bytes(dest, config.content)
            return dest

        return run

    def _run_units(self, units: list[_Unit], total: int, completed: int = 0) -> int:
        """Run independent units on the worker pool, recording each written path.

        On the first failure queued units are cancelled and running ones are
        waited for before the error propagates, so the ledger is complete when
        the rollback starts.
        """
        if not units:
            return completed
        stop = threading.Event()

        def guarded(unit: _Unit) -> Optional[Path]:
            if stop.is_set():
                return None
            self._check_cancelled()
            path = unit.run()
            self.ledger.record(path)
            return path

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="modsync") as pool:
            futures = {pool.submit(guarded, unit): unit for unit in units}
            try:
                for future in as_completed(futures):
                    if future.result() is None:
                        continue
                    completed += 1
                    notify(self.observer, completed, total, futures[future].message)
                    self._check_cancelled()
            except BaseException:
                stop.set()
                for future in futures:
                    future.cancel()
                raise
        return completed

    # ───────────────────────────────
    # Cancellation & rollback
    # ───────────────────────────────
    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancelRequested()

    def _rollback(self) -> list[tuple[Path, str]]:
        self._set_state(InstallState.ROLLING_BACK)
        failures = []
        for path in reversed(self.ledger.paths()):
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Rollback could not remove %s: %s", path, exc)
                failures.append((path, str(exc)))
            else:
                logger.info("Rolled back %s", path)
        self.ledger.clear()
        self._set_state(InstallState.FAILED)
        return failures

    def _set_state(self, state: InstallState) -> None:
        logger.debug("Install state %s -> %s", self.state.value, state.value)
        self.state = state


def install(
    root: Path,
    old_manifest: Optional[Manifest],
    new_manifest: Manifest,
    config_files: Iterable[ConfigFile] = (),
    *,
    observer: Optional[ProgressObserver] = None,
    cancel_event: Optional[threading.Event] = None,
    session: Optional[requests.Session] = None,
    workers: int = DOWNLOAD_WORKERS,
    fetch: Callable[..., Path] = fetch_and_store,
) -> InstallReport:
    installer = Installer(
        root,
        observer=observer,
        session=session,
        workers=workers,
        cancel_event=cancel_event,
        fetch=fetch,
    )
    return installer.install(old_manifest, new_manifest, config_files)
