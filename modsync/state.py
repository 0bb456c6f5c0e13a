import datetime
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import STATE_DIR_NAME, STATE_FILE_NAME
from .errors import FilesystemError, ManifestParseError
from .models import Manifest

logger = logging.getLogger(__name__)


def record_path(root: Path) -> Path:
    return Path(root) / STATE_DIR_NAME / STATE_FILE_NAME


@dataclass
class InstallRecord:
    """The manifest last applied to a root.

    Its addons carry the exact file names written to disk, which is what the
    next run's removal phase matches against.
    """

    manifest: Manifest
    update_id: Optional[str] = None
    installed_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "update_id": self.update_id,
            "installed_at": self.installed_at,
            "manifest": self.manifest.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstallRecord":
        if not isinstance(data, dict) or "manifest" not in data:
            raise ManifestParseError("Install record missing 'manifest' section")
        return cls(
            manifest=Manifest.from_dict(data["manifest"]),
            update_id=data.get("update_id"),
            installed_at=data.get("installed_at"),
        )

    @classmethod
    def load(cls, root: Path) -> Optional["InstallRecord"]:
        path = record_path(root)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ManifestParseError(f"Install record {path} is not valid JSON: {exc}") from exc
        except OSError as exc:
            raise FilesystemError(path, f"Failed to read install record ({exc.strerror or exc})") from exc
        return cls.from_dict(data)

    def save(self, root: Path) -> Path:
        path = record_path(root)
        if self.installed_at is None:
            self.installed_at = datetime.datetime.now(datetime.timezone.utc).isoformat()
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise FilesystemError(path, f"Failed to save install record ({exc.strerror or exc})") from exc
        logger.info("Recorded update %s for %s", self.update_id or "(local)", root)
        return path
