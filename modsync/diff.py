"""Manifest comparison: which addons to remove, update, add or leave alone."""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from .models import Addon, Category, Manifest


@dataclass
class CategoryDiff:
    """Disjoint classification of one category list.

    ``to_update`` carries the new addon data; the old counterpart is looked up
    in the old manifest by project id when it has to be removed.
    """

    to_remove: list[Addon] = field(default_factory=list)
    to_update: list[Addon] = field(default_factory=list)
    to_add: list[Addon] = field(default_factory=list)
    unchanged: list[Addon] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_remove or self.to_update or self.to_add)


@dataclass
class ManifestDiff:
    categories: dict[Category, CategoryDiff] = field(
        default_factory=lambda: {category: CategoryDiff() for category in Category}
    )

    def __getitem__(self, category: Category) -> CategoryDiff:
        return self.categories[Category(category)]

    def _flatten(self, attr: str) -> list[Addon]:
        return [addon for category in Category for addon in getattr(self.categories[category], attr)]

    @property
    def to_remove(self) -> list[Addon]:
        return self._flatten("to_remove")

    @property
    def to_update(self) -> list[Addon]:
        return self._flatten("to_update")

    @property
    def to_add(self) -> list[Addon]:
        return self._flatten("to_add")

    @property
    def unchanged(self) -> list[Addon]:
        return self._flatten("unchanged")

    @property
    def has_changes(self) -> bool:
        return any(part.has_changes for part in self.categories.values())

    def scheduled(self) -> Iterator[Tuple[Category, Addon]]:
        """Addons that need a download, new ones first within each category."""
        for category in Category:
            part = self.categories[category]
            for addon in part.to_add:
                yield category, addon
            for addon in part.to_update:
                yield category, addon

    def __str__(self) -> str:
        parts = []
        if self.to_add:
            parts.append(f"{len(self.to_add)} new")
        if self.to_update:
            parts.append(f"{len(self.to_update)} updated")
        if self.to_remove:
            parts.append(f"{len(self.to_remove)} removed")
        if self.unchanged:
            parts.append(f"{len(self.unchanged)} unchanged")
        return "ManifestDiff: " + ", ".join(parts) if parts else "ManifestDiff: no changes"


def _diff_category(old: tuple[Addon, ...], new: tuple[Addon, ...]) -> CategoryDiff:
    result = CategoryDiff()
    new_by_id = {addon.project_id: addon for addon in new}
    matched: set[int] = set()
    for old_addon in old:
        candidate = new_by_id.get(old_addon.project_id)
        if candidate is None:
            result.to_remove.append(old_addon)
            continue
        matched.add(candidate.project_id)
        if candidate.is_disabled:
            result.to_remove.append(old_addon)
        elif candidate.version != old_addon.version:
            result.to_update.append(candidate)
        else:
            result.unchanged.append(candidate)
    for new_addon in new:
        if new_addon.project_id in matched or new_addon.is_disabled:
            continue
        result.to_add.append(new_addon)
    return result


def compute_diff(old: Optional[Manifest], new: Manifest) -> ManifestDiff:
    """Classify every addon of ``old`` and ``new`` per category.

    Disabled addons in ``new`` are removal instructions when ``old`` has them
    and are skipped otherwise. Versions compare by exact string equality.
    Passing ``None`` for ``old`` treats the installation as empty.
    """
    diff = ManifestDiff()
    for category in Category:
        old_addons = old.addons(category) if old is not None else ()
        diff.categories[category] = _diff_category(old_addons, new.addons(category))
    return diff


@dataclass
class UpdatePreview:
    """What the player is shown before confirming an update."""

    removed_addons: list[str]
    updated_addons: list[Tuple[str, str]]
    new_addons: list[str]
    config_files: list[str]
    config_only: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.removed_addons or self.updated_addons or self.new_addons or self.config_files)

    def to_dict(self) -> dict:
        return {
            "removed_addons": list(self.removed_addons),
            "updated_addons": [list(pair) for pair in self.updated_addons],
            "new_addons": list(self.new_addons),
            "config_files": list(self.config_files),
            "config_only": self.config_only,
        }

    def render(self) -> str:
        if self.config_only:
            lines = ["Config-only update"]
        else:
            lines = []
            lines.extend(f"- {name}" for name in self.removed_addons)
            lines.extend(f"~ {old} -> {new}" for old, new in self.updated_addons)
            lines.extend(f"+ {name}" for name in self.new_addons)
        lines.extend(f"* {path}" for path in self.config_files)
        if not lines:
            return "Up to date"
        return "\n".join(lines)


def preview(old: Optional[Manifest], new: Manifest) -> UpdatePreview:
    config_paths = [ref.relative_path for ref in new.config_files]
    if new.is_config_only:
        return UpdatePreview([], [], [], config_paths, config_only=True)
    diff = compute_diff(old, new)
    old_versions = {}
    if old is not None:
        old_versions = {addon.project_id: addon.version for _, addon in old.iter_addons()}
    return UpdatePreview(
        removed_addons=[addon.name for addon in diff.to_remove],
        updated_addons=[(old_versions[addon.project_id], addon.version) for addon in diff.to_update],
        new_addons=[addon.name for addon in diff.to_add],
        config_files=config_paths,
    )
