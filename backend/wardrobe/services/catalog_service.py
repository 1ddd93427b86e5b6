from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from wardrobe.models.import_job import ImportItemPayload
from wardrobe.models.item import Item, ItemTag


async def create_item(
    db: AsyncSession,
    payload: ImportItemPayload,
    image_url: str,
    tag_ids: list[uuid.UUID],
) -> Item:
    item = Item(
        name=payload.name,
        type=payload.type,
        category=payload.category,
        color=payload.color,
        image_url=image_url,
        brand=payload.brand,
        size=payload.size,
        material=payload.material,
        notes=payload.notes,
        tag_links=[ItemTag(tag_id=tag_id) for tag_id in dict.fromkeys(tag_ids)],
    )
    db.add(item)
    await db.flush()
    return item
