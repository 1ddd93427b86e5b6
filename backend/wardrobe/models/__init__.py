from __future__ import annotations

from wardrobe.models.import_job import (
    ImportDefaults,
    ImportItemPayload,
    ImportItemStatus,
    ImportJob,
    ImportJobItem,
    ImportJobStatus,
)
from wardrobe.models.item import Item, ItemTag
from wardrobe.models.tag import Tag

__all__ = [
    "ImportDefaults",
    "ImportItemPayload",
    "ImportItemStatus",
    "ImportJob",
    "ImportJobItem",
    "ImportJobStatus",
    "Item",
    "ItemTag",
    "Tag",
]
