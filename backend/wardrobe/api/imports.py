from __future__ import annotations

import asyncio
import logging
import os

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from wardrobe.api.deps import get_import_manager, get_storage
from wardrobe.config import settings
from wardrobe.models.import_job import new_id
from wardrobe.schemas.import_job import serialize_job
from wardrobe.services.import_manager import ImportJobManager
from wardrobe.services.manifest_service import (
    ManifestError,
    UploadedImage,
    build_defaults,
    resolve_csv_archive,
    resolve_direct_upload,
    validate_direct_upload,
)
from wardrobe.services.storage import ImageStorage, UploadTooLargeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["imports"])

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
MANIFEST_CONTENT_TYPES = {
    "text/csv",
    "application/vnd.ms-excel",
    "application/zip",
    "application/x-zip-compressed",
}
MANIFEST_EXTENSIONS = {".csv", ".zip"}


def _is_manifest_file(upload: UploadFile) -> bool:
    ext = os.path.splitext(upload.filename or "")[1].lower()
    return upload.content_type in MANIFEST_CONTENT_TYPES or ext in MANIFEST_EXTENSIONS


@router.post("", response_model=dict)
async def create_import(
    images: list[UploadFile] = File(default=[]),
    item_type: str | None = Form(None, alias="type"),
    category: str | None = Form(None),
    color: str | None = Form(None),
    brand: str | None = Form(None),
    size: str | None = Form(None),
    material: str | None = Form(None),
    notes: str | None = Form(None),
    tags: list[str] | None = Form(None),
    manager: ImportJobManager = Depends(get_import_manager),
    storage: ImageStorage = Depends(get_storage),
) -> dict:
    defaults = build_defaults(
        type=item_type,
        category=category,
        color=color,
        brand=brand,
        size=size,
        material=material,
        notes=notes,
        tags=tags,
    )
    try:
        validate_direct_upload(len(images), defaults)
    except ManifestError as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict()) from exc

    if len(images) > settings.IMPORT_MAX_IMAGES:
        raise HTTPException(
            status_code=400, detail=f"Too many images (max {settings.IMPORT_MAX_IMAGES})"
        )
    if any(image.content_type not in IMAGE_CONTENT_TYPES for image in images):
        raise HTTPException(
            status_code=400, detail="Invalid file type. Only JPG, PNG, and WebP are allowed."
        )

    uploads: list[UploadedImage] = []
    try:
        for image in images:
            path = await storage.save_upload(
                image, prefix="item", max_bytes=settings.UPLOAD_MAX_BYTES
            )
            uploads.append(UploadedImage(filename=image.filename or path.name, path=path))
    except UploadTooLargeError as exc:
        for upload in uploads:
            storage.remove(upload.path)
        raise HTTPException(status_code=413, detail="File exceeds upload limit") from exc

    try:
        items = resolve_direct_upload(uploads, defaults)
        job = manager.create_job(items, defaults)
    except Exception as exc:
        logger.exception("Create import job error")
        for upload in uploads:
            storage.remove(upload.path)
        raise HTTPException(status_code=500, detail="Failed to start import") from exc

    return serialize_job(job)


@router.post("/csv", response_model=dict)
async def create_csv_import(
    csv_file: UploadFile | None = File(None, alias="csv"),
    zip_file: UploadFile | None = File(None, alias="zip"),
    item_type: str | None = Form(None, alias="type"),
    category: str | None = Form(None),
    color: str | None = Form(None),
    brand: str | None = Form(None),
    size: str | None = Form(None),
    material: str | None = Form(None),
    notes: str | None = Form(None),
    tags: list[str] | None = Form(None),
    manager: ImportJobManager = Depends(get_import_manager),
    storage: ImageStorage = Depends(get_storage),
) -> dict:
    if csv_file is None or zip_file is None:
        raise HTTPException(status_code=400, detail="CSV and ZIP files are required")
    if not (_is_manifest_file(csv_file) and _is_manifest_file(zip_file)):
        raise HTTPException(
            status_code=400, detail="Invalid file type. Only CSV and ZIP are allowed."
        )

    defaults = build_defaults(
        type=item_type,
        category=category,
        color=color,
        brand=brand,
        size=size,
        material=material,
        notes=notes,
        tags=tags,
    )

    csv_path = None
    try:
        csv_path = await storage.save_upload(
            csv_file, prefix="manifest", max_bytes=settings.IMPORT_ARCHIVE_MAX_BYTES
        )
        zip_path = await storage.save_upload(
            zip_file, prefix="archive", max_bytes=settings.IMPORT_ARCHIVE_MAX_BYTES
        )
    except UploadTooLargeError as exc:
        storage.remove(csv_path)
        raise HTTPException(status_code=413, detail="File exceeds upload limit") from exc

    job_id = new_id()
    try:
        items = await asyncio.to_thread(
            resolve_csv_archive,
            csv_path,
            zip_path,
            defaults,
            storage,
            job_id=job_id,
            max_entry_bytes=settings.UPLOAD_MAX_BYTES,
        )
    except ManifestError as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict()) from exc
    except Exception as exc:
        logger.exception("CSV import error")
        raise HTTPException(status_code=500, detail="Failed to start CSV import") from exc

    job = manager.create_job(items, defaults, job_id=job_id)
    return serialize_job(job)


@router.get("/{job_id}", response_model=dict)
async def get_import_job(
    job_id: str,
    manager: ImportJobManager = Depends(get_import_manager),
) -> dict:
    job = manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Import job not found")
    return serialize_job(job)
