import json
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Iterator, Optional, Tuple

from .errors import ManifestParseError

UPDATE_TYPES = ("full", "config")


class Category(str, Enum):
    """Addon kind. The value doubles as manifest key and install subdirectory."""

    MODS = "mods"
    RESOURCEPACKS = "resourcepacks"
    SHADERPACKS = "shaderpacks"
    DATAPACKS = "datapacks"

    @property
    def label(self) -> str:
        return self.value[:-1] if self.value.endswith("s") else self.value


def _require(data: dict, keys: list[str], what: str) -> None:
    missing = [key for key in keys if key not in data]
    if missing:
        raise ManifestParseError(f"{what} missing keys: {', '.join(missing)}")


def _as_int(value, key: str) -> int:
    if isinstance(value, bool):
        raise ManifestParseError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ManifestParseError(f"{key} must be an integer, got {value!r}") from None


def _check_filename(filename: str) -> str:
    if not filename or filename in (".", "..") or "/" in filename or "\\" in filename:
        raise ManifestParseError(f"Invalid file name on disk: {filename!r}")
    return filename


def normalize_relative_path(path: str) -> str:
    """Return ``path`` with forward slashes, rejecting anything that leaves the root."""

    normalized = str(path).replace("\\", "/").strip()
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    pure = PurePosixPath(normalized)
    if not normalized or pure.is_absolute() or ".." in pure.parts or ":" in pure.parts[0]:
        raise ManifestParseError(f"Config path escapes the installation root: {path!r}")
    return str(pure)


@dataclass(frozen=True)
class Addon:
    project_id: int
    file_id: int
    name: str
    version: str
    filename: str
    download_url: str
    folder: str = ""
    website_url: Optional[str] = None
    disabled: Optional[bool] = None
    sha256: Optional[str] = None

    @property
    def is_disabled(self) -> bool:
        return self.disabled is True

    @classmethod
    def from_dict(cls, data: dict) -> "Addon":
        if not isinstance(data, dict):
            raise ManifestParseError(f"Addon entry must be an object, got {type(data).__name__}")
        required = [
            "addon_file_id",
            "addon_name",
            "addon_project_id",
            "cdn_download_url",
            "version",
            "fileNameOnDisk",
        ]
        _require(data, required, "Addon")
        disabled = data.get("disabled")
        if disabled is not None and not isinstance(disabled, bool):
            raise ManifestParseError(f"disabled must be a boolean, got {disabled!r}")
        return cls(
            project_id=_as_int(data["addon_project_id"], "addon_project_id"),
            file_id=_as_int(data["addon_file_id"], "addon_file_id"),
            name=str(data["addon_name"]),
            version=str(data["version"]),
            filename=_check_filename(str(data["fileNameOnDisk"])),
            download_url=str(data["cdn_download_url"]),
            folder=str(data.get("mod_folder_path") or ""),
            website_url=str(data["webSiteURL"]) if data.get("webSiteURL") else None,
            disabled=disabled,
            sha256=str(data["sha256"]).lower() if data.get("sha256") else None,
        )

    def to_dict(self) -> dict:
        data = {
            "addon_file_id": self.file_id,
            "addon_name": self.name,
            "addon_project_id": self.project_id,
            "cdn_download_url": self.download_url,
            "mod_folder_path": self.folder,
            "version": self.version,
            "webSiteURL": self.website_url,
            "fileNameOnDisk": self.filename,
        }
        if self.disabled is not None:
            data["disabled"] = self.disabled
        if self.sha256:
            data["sha256"] = self.sha256
        return data


@dataclass(frozen=True)
class ConfigFileRef:
    filename: str
    relative_path: str

    @classmethod
    def from_dict(cls, data: dict) -> "ConfigFileRef":
        if not isinstance(data, dict):
            raise ManifestParseError(f"Config file entry must be an object, got {type(data).__name__}")
        _require(data, ["filename", "relative_path"], "Config file")
        return cls(filename=str(data["filename"]), relative_path=normalize_relative_path(data["relative_path"]))

    def to_dict(self) -> dict:
        return {"filename": self.filename, "relative_path": self.relative_path}


@dataclass(frozen=True)
class ConfigFile:
    """Resolved content of a config file, addressed relative to the install root."""

    relative_path: str
    content: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "relative_path", normalize_relative_path(self.relative_path))
        if isinstance(self.content, str):
            object.__setattr__(self, "content", self.content.encode("utf-8"))

    @property
    def filename(self) -> str:
        return PurePosixPath(self.relative_path).name


@dataclass(frozen=True)
class Manifest:
    mods: Tuple[Addon, ...] = ()
    resourcepacks: Tuple[Addon, ...] = ()
    shaderpacks: Tuple[Addon, ...] = ()
    datapacks: Tuple[Addon, ...] = ()
    config_files: Tuple[ConfigFileRef, ...] = ()
    update_type: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept lists from callers but keep the value hashable and immutable.
        for name in [c.value for c in Category] + ["config_files"]:
            object.__setattr__(self, name, tuple(getattr(self, name)))

    @property
    def is_config_only(self) -> bool:
        return self.update_type == "config"

    def addons(self, category: Category) -> Tuple[Addon, ...]:
        return getattr(self, Category(category).value)

    def iter_addons(self) -> Iterator[Tuple[Category, Addon]]:
        for category in Category:
            for addon in self.addons(category):
                yield category, addon

    def validate(self) -> None:
        if self.update_type is not None and self.update_type not in UPDATE_TYPES:
            raise ManifestParseError(f"Unknown updateType: {self.update_type!r}")
        owners: dict[int, Category] = {}
        for category, addon in self.iter_addons():
            owner = owners.get(addon.project_id)
            if owner is category:
                raise ManifestParseError(f"Duplicate project id {addon.project_id} in {category.value}")
            if owner is not None:
                raise ManifestParseError(
                    f"Project id {addon.project_id} listed in both {owner.value} and {category.value}"
                )
            owners[addon.project_id] = category

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        if not isinstance(data, dict):
            raise ManifestParseError("Manifest must be a JSON object")
        lists = {}
        for category in Category:
            entries = data.get(category.value) or []
            if not isinstance(entries, list):
                raise ManifestParseError(f"{category.value} must be a list")
            lists[category.value] = tuple(Addon.from_dict(item) for item in entries)
        config_entries = data.get("config_files") or []
        if not isinstance(config_entries, list):
            raise ManifestParseError("config_files must be a list")
        manifest = cls(
            config_files=tuple(ConfigFileRef.from_dict(item) for item in config_entries),
            update_type=data.get("updateType"),
            **lists,
        )
        manifest.validate()
        return manifest

    @classmethod
    def from_json(cls, text: str) -> "Manifest":
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ManifestParseError(f"Manifest is not valid JSON: {exc}") from exc
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        data: dict = {}
        if self.update_type is not None:
            data["updateType"] = self.update_type
        for category in Category:
            data[category.value] = [addon.to_dict() for addon in self.addons(category)]
        data["config_files"] = [ref.to_dict() for ref in self.config_files]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
