from typing import Optional, Tuple

from .errors import CategoryResolutionError
from .models import Addon, Category, Manifest


def resolve_category(manifest: Manifest, addon: Addon) -> Category:
    """Return the category list of ``manifest`` that holds ``addon``'s project."""

    for category, candidate in manifest.iter_addons():
        if candidate.project_id == addon.project_id:
            return category
    raise CategoryResolutionError(addon.project_id, addon.name)


class CategoryIndex:
    """project_id -> (category, addon) lookup built once per manifest."""

    def __init__(self, manifest: Manifest) -> None:
        self.manifest = manifest
        self._entries: dict[int, Tuple[Category, Addon]] = {}
        for category, addon in manifest.iter_addons():
            self._entries.setdefault(addon.project_id, (category, addon))

    def __contains__(self, project_id: int) -> bool:
        return project_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, project_id: int) -> Optional[Tuple[Category, Addon]]:
        return self._entries.get(project_id)

    def category_of(self, addon: Addon) -> Category:
        entry = self._entries.get(addon.project_id)
        if entry is None:
            raise CategoryResolutionError(addon.project_id, addon.name)
        return entry[0]
