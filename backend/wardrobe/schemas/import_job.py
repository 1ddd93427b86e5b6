from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasGenerator, BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from wardrobe.models.import_job import ImportItemStatus, ImportJob, ImportJobStatus

_config = ConfigDict(
    from_attributes=True,
    alias_generator=AliasGenerator(serialization_alias=to_camel),
)


class ImportDefaultsResponse(BaseModel):
    type: str
    category: str
    color: str
    brand: str | None = None
    size: str | None = None
    material: str | None = None
    notes: str | None = None
    tags: list[str]

    model_config = _config


class ImportJobItemResponse(BaseModel):
    id: str
    filename: str
    status: ImportItemStatus
    item_id: str | None = None
    image_url: str | None = None
    error: str | None = None

    model_config = _config


class ImportJobResponse(BaseModel):
    id: str
    status: ImportJobStatus
    total: int
    completed: int
    failed: int
    items: list[ImportJobItemResponse]
    defaults: ImportDefaultsResponse
    created_at: datetime

    model_config = _config


def serialize_job(job: ImportJob) -> dict[str, Any]:
    """External snapshot of a job: camelCase keys, unset optionals omitted."""
    return ImportJobResponse.model_validate(job).model_dump(
        mode="json", by_alias=True, exclude_none=True
    )
