"""Keep a modpack installation in sync with a published manifest."""

from .categories import CategoryIndex, resolve_category
from .diff import CategoryDiff, ManifestDiff, UpdatePreview, compute_diff, preview
from .download import fetch_and_store
from .errors import (
    CategoryResolutionError,
    FilesystemError,
    InstallCancelledError,
    InstallInProgressError,
    InstallRolledBackError,
    IntegrityError,
    ManifestParseError,
    ModsyncError,
    TransportError,
)
from .installer import InstallLedger, InstallReport, Installer, InstallState, install
from .models import Addon, Category, ConfigFile, ConfigFileRef, Manifest
from .progress import ProgressEvent, ProgressObserver

__version__ = "0.3.0"

__all__ = [
    "Addon",
    "Category",
    "CategoryDiff",
    "CategoryIndex",
    "CategoryResolutionError",
    "ConfigFile",
    "ConfigFileRef",
    "FilesystemError",
    "InstallCancelledError",
    "InstallInProgressError",
    "InstallLedger",
    "InstallReport",
    "InstallRolledBackError",
    "InstallState",
    "Installer",
    "IntegrityError",
    "Manifest",
    "ManifestDiff",
    "ManifestParseError",
    "ModsyncError",
    "ProgressEvent",
    "ProgressObserver",
    "TransportError",
    "UpdatePreview",
    "compute_diff",
    "fetch_and_store",
    "install",
    "preview",
    "resolve_category",
]
