from __future__ import annotations

import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wardrobe.models.tag import Tag

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_tag_id(token: str) -> bool:
    return bool(UUID_RE.match(token))


class TagResolver:
    """Per-job memo of tag token -> tag id.

    Tokens shaped like an id are looked up by id; everything else is treated
    as a tag name and created on first sight. A name is only ever created once
    per job, no matter how many entries mention it.
    """

    def __init__(self) -> None:
        self._cache: dict[str, uuid.UUID] = {}

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def _key(token: str) -> str:
        return str(uuid.UUID(token)) if is_tag_id(token) else token

    async def resolve(self, db: AsyncSession, tokens: list[str]) -> list[uuid.UUID]:
        trimmed = [token.strip() for token in tokens if token and token.strip()]
        if not trimmed:
            return []

        id_tokens = {
            self._key(token) for token in trimmed if is_tag_id(token) and self._key(token) not in self._cache
        }
        if id_tokens:
            result = await db.execute(
                select(Tag).where(Tag.id.in_([uuid.UUID(t) for t in id_tokens]))
            )
            for tag in result.scalars().all():
                self._cache[str(tag.id)] = tag.id

        missing = list(
            dict.fromkeys(t for t in trimmed if not is_tag_id(t) and t not in self._cache)
        )
        if missing:
            result = await db.execute(select(Tag).where(Tag.name.in_(missing)))
            for tag in result.scalars().all():
                self._cache[tag.name] = tag.id

            created = [Tag(name=name) for name in missing if name not in self._cache]
            if created:
                db.add_all(created)
                # Commit right away so a later rollback of the item insert
                # cannot leave a cached id pointing at a vanished row.
                await db.commit()
                for tag in created:
                    self._cache[tag.name] = tag.id
                logger.info("Created %d new tag(s): %s", len(created), ", ".join(t.name for t in created))

        return [self._cache[key] for key in map(self._key, trimmed) if key in self._cache]
