from __future__ import annotations

import json
import logging
import os
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

import pandas as pd

from wardrobe.models.import_job import (
    ImportDefaults,
    ImportItemPayload,
    ImportItemStatus,
    ImportJobItem,
)
from wardrobe.services.storage import ImageStorage

logger = logging.getLogger(__name__)

FILENAME_COLUMNS = ("filename", "file", "image")

MISSING_FILENAME = "Missing filename in CSV."
MISSING_REQUIRED_FIELDS = "Missing type, category, or color for this row."
FILE_NOT_IN_ARCHIVE = "File not found in ZIP."
ARCHIVE_READ_FAILED = "Could not extract file from ZIP."
ARCHIVE_ENTRY_TOO_LARGE = "File exceeds upload limit."


class ManifestError(Exception):
    """The import request is rejected as a whole; no job is created."""

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


@dataclass
class UploadedImage:
    filename: str
    path: Path


# ---------------------------------------------------------------------------
# Form field helpers
# ---------------------------------------------------------------------------

def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def parse_tag_field(values: list[str] | str | None) -> list[str]:
    """Normalise the ``tags`` form field.

    Accepts repeated fields, a JSON array string or a single plain value.
    A value that looks like JSON but does not parse is kept as one tag.
    """
    if not values:
        return []
    if isinstance(values, str):
        values = [values]

    if len(values) == 1 and values[0].strip().startswith("["):
        raw = values[0].strip()
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return [raw]
        if not isinstance(parsed, list):
            return [raw]
        return [str(tag).strip() for tag in parsed if str(tag).strip()]

    return [value.strip() for value in values if value and value.strip()]


def build_defaults(
    *,
    type: str | None = None,
    category: str | None = None,
    color: str | None = None,
    brand: str | None = None,
    size: str | None = None,
    material: str | None = None,
    notes: str | None = None,
    tags: list[str] | str | None = None,
) -> ImportDefaults:
    return ImportDefaults(
        type=_clean(type) or "",
        category=_clean(category) or "",
        color=_clean(color) or "",
        brand=_clean(brand),
        size=_clean(size),
        material=_clean(material),
        notes=_clean(notes),
        tags=parse_tag_field(tags),
    )


# ---------------------------------------------------------------------------
# Direct upload
# ---------------------------------------------------------------------------

def validate_direct_upload(file_count: int, defaults: ImportDefaults) -> None:
    if file_count == 0:
        raise ManifestError("No images uploaded")
    if not (defaults.type and defaults.category and defaults.color):
        raise ManifestError("Type, category, and color are required")


def resolve_direct_upload(
    uploads: list[UploadedImage], defaults: ImportDefaults
) -> list[ImportJobItem]:
    validate_direct_upload(len(uploads), defaults)
    return [
        ImportJobItem(
            filename=upload.filename,
            file_path=upload.path,
            payload=ImportItemPayload(
                name=os.path.splitext(os.path.basename(upload.filename))[0] or "Imported item",
                type=defaults.type,
                category=defaults.category,
                color=defaults.color,
                brand=defaults.brand,
                size=defaults.size,
                material=defaults.material,
                notes=defaults.notes,
                tags=list(defaults.tags),
            ),
        )
        for upload in uploads
    ]


# ---------------------------------------------------------------------------
# CSV manifest + ZIP archive
# ---------------------------------------------------------------------------

def read_manifest_rows(csv_path: Path) -> list[dict[str, str]]:
    """Parse the CSV manifest into row dicts keyed by normalised header.

    Every non-empty line after the header becomes one row, even when all of
    its cells are blank. A row with more or fewer fields than the header
    rejects the whole manifest.
    """
    try:
        df = pd.read_csv(
            csv_path,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return []
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise ManifestError("CSV parse failed", details=[str(exc).strip()]) from exc

    # Header case and surrounding whitespace are ignored
    header = [str(c).strip().lower() for c in df.iloc[0]]
    body = df.iloc[1:]

    # Short rows are padded with NaN by the parser; explicit empty cells stay "".
    seen = body.notna().sum(axis=1)
    short = [
        f"Row {number}: expected {len(header)} fields, saw {count}"
        for number, count in enumerate(seen.tolist(), start=1)
        if count < len(header)
    ]
    if short:
        raise ManifestError("CSV parse failed", details=short)

    return [
        {key: str(value) for key, value in zip(header, values)}
        for values in body.itertuples(index=False, name=None)
    ]


def _base_name(filename: str) -> str:
    return PurePosixPath(filename.replace("\\", "/")).name


def index_archive(archive: zipfile.ZipFile) -> tuple[dict[str, zipfile.ZipInfo], dict[str, zipfile.ZipInfo]]:
    """Map lower-cased base filenames and extension-less stems to entries.

    When several entries share a key the first one in the archive wins.
    """
    by_name: dict[str, zipfile.ZipInfo] = {}
    by_stem: dict[str, zipfile.ZipInfo] = {}
    for info in archive.infolist():
        if info.is_dir():
            continue
        name = _base_name(info.filename).lower()
        if not name:
            continue
        by_name.setdefault(name, info)
        by_stem.setdefault(PurePosixPath(name).stem, info)
    return by_name, by_stem


def _row_value(row: dict[str, str], column: str) -> str:
    return row.get(column, "").strip()


def _resolve_row_payload(row: dict[str, str], index: int, defaults: ImportDefaults) -> tuple[str, ImportItemPayload]:
    filename = next((_row_value(row, c) for c in FILENAME_COLUMNS if _row_value(row, c)), "")
    name = (
        _row_value(row, "name")
        or (PurePosixPath(_base_name(filename)).stem if filename else "")
        or f"Imported item {index + 1}"
    )
    tags_raw = _row_value(row, "tags")
    tags = (
        [tag.strip() for tag in tags_raw.split(",") if tag.strip()]
        if tags_raw
        else list(defaults.tags)
    )
    payload = ImportItemPayload(
        name=name,
        type=_row_value(row, "type") or defaults.type,
        category=_row_value(row, "category") or defaults.category,
        color=_row_value(row, "color") or defaults.color,
        brand=_row_value(row, "brand") or defaults.brand,
        size=_row_value(row, "size") or defaults.size,
        material=_row_value(row, "material") or defaults.material,
        notes=_row_value(row, "notes") or defaults.notes,
        tags=tags,
    )
    return filename, payload


def resolve_csv_archive(
    csv_path: Path,
    archive_path: Path,
    defaults: ImportDefaults,
    storage: ImageStorage,
    *,
    job_id: str,
    max_entry_bytes: int | None = None,
) -> list[ImportJobItem]:
    """Build one import entry per CSV row, extracting matched archive files.

    Rows that cannot be resolved become pre-failed entries; only problems with
    the manifest or archive as a whole raise :class:`ManifestError`. Entries
    larger than ``max_entry_bytes`` once decompressed are never extracted. The
    uploaded CSV and ZIP are deleted before returning, whatever the outcome.
    """
    try:
        rows = read_manifest_rows(csv_path)
        if not rows:
            raise ManifestError("CSV contains no data rows")

        try:
            archive = zipfile.ZipFile(archive_path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ManifestError("Invalid ZIP archive") from exc

        with archive:
            by_name, by_stem = index_archive(archive)
            if not by_name:
                raise ManifestError("ZIP contains no files")

            items: list[ImportJobItem] = []
            for index, row in enumerate(rows):
                filename, payload = _resolve_row_payload(row, index, defaults)
                item = ImportJobItem(filename=filename or payload.name, payload=payload)

                if not filename:
                    item.status = ImportItemStatus.FAILED
                    item.error = MISSING_FILENAME
                elif not (payload.type and payload.category and payload.color):
                    item.status = ImportItemStatus.FAILED
                    item.error = MISSING_REQUIRED_FIELDS
                else:
                    base = _base_name(filename).lower()
                    match = by_name.get(base) or by_stem.get(PurePosixPath(base).stem)
                    if match is None:
                        item.status = ImportItemStatus.FAILED
                        item.error = FILE_NOT_IN_ARCHIVE
                    elif max_entry_bytes is not None and match.file_size > max_entry_bytes:
                        item.status = ImportItemStatus.FAILED
                        item.error = ARCHIVE_ENTRY_TOO_LARGE
                    else:
                        ext = PurePosixPath(match.filename).suffix.lower() or ".jpg"
                        try:
                            item.file_path = storage.write_bytes(
                                f"import-{job_id}-{index}{ext}", archive.read(match)
                            )
                        except (zipfile.BadZipFile, OSError, RuntimeError):
                            logger.warning(
                                "Failed to extract %s from archive for job %s",
                                match.filename,
                                job_id,
                                exc_info=True,
                            )
                            item.status = ImportItemStatus.FAILED
                            item.error = ARCHIVE_READ_FAILED
                items.append(item)
    finally:
        storage.remove(csv_path)
        storage.remove(archive_path)

    return items
