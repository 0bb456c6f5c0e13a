from pathlib import Path
from typing import Optional


class ModsyncError(Exception):
    """Base class for every error raised by modsync."""


class ManifestParseError(ModsyncError):
    pass


class TransportError(ModsyncError):
    def __init__(self, url: str, status: Optional[int] = None, body: str = "", reason: str = "") -> None:
        self.url = url
        self.status = status
        self.body = body
        if status is not None:
            detail = f"HTTP {status}"
            if body:
                detail += f": {body[:200]}"
        else:
            detail = reason or "network failure"
        super().__init__(f"Failed to download {url}: {detail}")


class IntegrityError(ModsyncError):
    def __init__(self, url: str, expected: str, actual: str) -> None:
        self.url = url
        self.expected = expected
        self.actual = actual
        super().__init__(f"SHA256 mismatch for {url}: expected {expected}, got {actual}")


class FilesystemError(ModsyncError):
    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class CategoryResolutionError(ModsyncError):
    def __init__(self, project_id: int, name: str = "") -> None:
        self.project_id = project_id
        label = f"{name} ({project_id})" if name else str(project_id)
        super().__init__(f"Addon {label} is not listed in any category of the manifest")


class InstallRolledBackError(ModsyncError):
    """The install failed and every file written during the run was removed.

    ``original`` is the error that aborted the run. ``rollback_failures`` holds
    the paths that could not be deleted, with the reason.
    """

    prefix = "Install failed and rolled back"

    def __init__(self, original: BaseException, rollback_failures: Optional[list[tuple[Path, str]]] = None) -> None:
        self.original = original
        self.rollback_failures = list(rollback_failures or [])
        message = f"{self.prefix}: {original}"
        if self.rollback_failures:
            message += f" ({len(self.rollback_failures)} file(s) could not be removed)"
        super().__init__(message)


class InstallCancelledError(InstallRolledBackError):
    prefix = "Install cancelled and rolled back"


class InstallInProgressError(ModsyncError):
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        super().__init__(f"Another install is already running for {root}")
