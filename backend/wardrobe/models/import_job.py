from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path


class ImportJobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"


class ImportItemStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_ITEM_STATUSES = {ImportItemStatus.COMPLETED, ImportItemStatus.FAILED}


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ImportDefaults:
    """Field values applied to every entry that does not override them."""

    type: str = ""
    category: str = ""
    color: str = ""
    brand: str | None = None
    size: str | None = None
    material: str | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ImportItemPayload:
    name: str
    type: str
    category: str
    color: str
    brand: str | None = None
    size: str | None = None
    material: str | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class ImportJobItem:
    filename: str
    payload: ImportItemPayload
    id: str = field(default_factory=new_id)
    status: ImportItemStatus = ImportItemStatus.QUEUED
    item_id: str | None = None
    image_url: str | None = None
    error: str | None = None
    file_path: Path | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ITEM_STATUSES

    def mark_processing(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Import item {self.id} is already {self.status.value}")
        self.status = ImportItemStatus.PROCESSING

    def mark_completed(self, item_id: str, image_url: str) -> None:
        if self.is_terminal:
            raise ValueError(f"Import item {self.id} is already {self.status.value}")
        self.status = ImportItemStatus.COMPLETED
        self.item_id = item_id
        self.image_url = image_url
        self.error = None

    def mark_failed(self, error: str) -> None:
        if self.is_terminal:
            raise ValueError(f"Import item {self.id} is already {self.status.value}")
        self.status = ImportItemStatus.FAILED
        self.error = error
        self.item_id = None


@dataclass
class ImportJob:
    """One bulk import request and the entries it owns.

    Counters are only mutated by the import worker; ``completed + failed``
    never exceeds ``total`` and equals it once ``status`` is ``completed``.
    """

    items: list[ImportJobItem]
    defaults: ImportDefaults
    id: str = field(default_factory=new_id)
    status: ImportJobStatus = ImportJobStatus.QUEUED
    completed: int = 0
    failed: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def __post_init__(self) -> None:
        self.failed = sum(1 for item in self.items if item.status is ImportItemStatus.FAILED)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def is_finished(self) -> bool:
        return self.status is ImportJobStatus.COMPLETED
