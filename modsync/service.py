import dataclasses
import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence

import requests

from .config import DOWNLOAD_WORKERS
from .diff import UpdatePreview, preview
from .download import sha256_file
from .errors import FilesystemError, InstallInProgressError
from .installer import InstallReport, install
from .models import Category, ConfigFile, Manifest
from .progress import ProgressObserver
from .remote import UpdateStore
from .state import InstallRecord

logger = logging.getLogger(__name__)

_ACTIVE_ROOTS: set[Path] = set()
_ACTIVE_LOCK = threading.Lock()


@contextmanager
def root_lock(root: Path) -> Iterator[Path]:
    """Hold exclusive use of an installation root for the duration of the block."""
    key = Path(root).resolve()
    with _ACTIVE_LOCK:
        if key in _ACTIVE_ROOTS:
            raise InstallInProgressError(key)
        _ACTIVE_ROOTS.add(key)
    try:
        yield key
    finally:
        with _ACTIVE_LOCK:
            _ACTIVE_ROOTS.discard(key)


def installed_addons(manifest: Manifest) -> Manifest:
    """``manifest`` with disabled addons dropped, i.e. what an install leaves on disk."""
    kept = {
        category.value: tuple(addon for addon in manifest.addons(category) if not addon.is_disabled)
        for category in Category
    }
    return dataclasses.replace(manifest, **kept)


def next_record(previous: Optional[InstallRecord], manifest: Manifest, update_id: Optional[str]) -> InstallRecord:
    """Record to persist after ``manifest`` was applied successfully.

    A config-only update leaves the addons on disk as they were, so the addon
    lists of the previous record are carried forward. Disabled addons are never
    on disk after a full update and are left out, so switching one back on
    later schedules a download.
    """
    if manifest.is_config_only:
        base = previous.manifest if previous is not None else Manifest()
        applied = dataclasses.replace(base, config_files=manifest.config_files, update_type=None)
    else:
        applied = installed_addons(manifest)
    return InstallRecord(manifest=applied, update_id=update_id)


def preview_update(root: Path, manifest: Manifest) -> UpdatePreview:
    record = InstallRecord.load(root)
    return preview(record.manifest if record else None, manifest)


def verify_installed(root: Path, manifest: Manifest) -> list[tuple[Path, str]]:
    """Compare the addons of ``manifest`` with the files under ``root``.

    Returns ``(path, problem)`` pairs for files that are missing or whose
    SHA-256 no longer matches the digest the manifest carries.
    """
    problems = []
    for category, addon in manifest.iter_addons():
        path = Path(root) / category.value / addon.filename
        if not path.is_file():
            problems.append((path, "missing"))
            continue
        if not addon.sha256:
            continue
        try:
            actual = sha256_file(path)
        except OSError as exc:
            raise FilesystemError(path, f"Failed to read file ({exc.strerror or exc})") from exc
        if actual != addon.sha256.lower():
            problems.append((path, "digest mismatch"))
    return problems


def apply_update(
    root: Path,
    update_id: str,
    store: UpdateStore,
    *,
    observer: Optional[ProgressObserver] = None,
    cancel_event: Optional[threading.Event] = None,
    session: Optional[requests.Session] = None,
    workers: int = DOWNLOAD_WORKERS,
) -> InstallReport:
    """Fetch update ``update_id`` from ``store`` and apply it to ``root``."""
    root = Path(root)
    with root_lock(root):
        previous = InstallRecord.load(root)
        manifest = store.fetch_manifest(update_id)
        config_files = [store.fetch_config_file(update_id, ref.relative_path) for ref in manifest.config_files]
        report = install(
            root,
            previous.manifest if previous else None,
            manifest,
            config_files,
            observer=observer,
            cancel_event=cancel_event,
            session=session,
            workers=workers,
        )
        next_record(previous, manifest, update_id).save(root)
    return report


def publish_update(
    store: UpdateStore,
    manifest: Manifest,
    config_files: Sequence[ConfigFile],
    update_id: Optional[str] = None,
    message: Optional[str] = None,
) -> str:
    """Commit an update and return its id; a fresh uuid is used when none is given."""
    update_id = update_id or str(uuid.uuid4())
    listed = {ref.relative_path for ref in manifest.config_files}
    missing = [config.relative_path for config in config_files if config.relative_path not in listed]
    if missing:
        logger.warning("Config files not referenced by the manifest: %s", ", ".join(missing))
    store.commit_update(update_id, manifest, config_files, message=message)
    return update_id
