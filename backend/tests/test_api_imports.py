from __future__ import annotations

import json
from collections.abc import Callable

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wardrobe.models.item import Item
from wardrobe.services.import_manager import ImportJobManager
from wardrobe.services.storage import ImageStorage

FORM = {"type": "TOP", "category": "Imported", "color": "Red"}


async def _items(session_factory: async_sessionmaker[AsyncSession]) -> list[Item]:
    async with session_factory() as db:
        result = await db.execute(select(Item).order_by(Item.name))
        return list(result.scalars().all())


async def test_direct_upload_creates_job(
    client: httpx.AsyncClient,
    manager: ImportJobManager,
    session_factory: async_sessionmaker[AsyncSession],
    image_bytes: Callable[..., bytes],
):
    res = await client.post(
        "/api/imports",
        data=FORM,
        files=[
            ("images", ("a.png", image_bytes(1), "image/png")),
            ("images", ("b.png", image_bytes(2), "image/png")),
        ],
    )
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 2
    assert body["completed"] == 0
    assert body["failed"] == 0
    assert body["defaults"]["type"] == "TOP"
    assert [item["filename"] for item in body["items"]] == ["a.png", "b.png"]
    assert "createdAt" in body
    assert "itemId" not in body["items"][0]

    await manager.wait_idle()

    res = await client.get(f"/api/imports/{body['id']}")
    assert res.status_code == 200
    job = res.json()
    assert job["status"] == "completed"
    assert job["completed"] == 2
    assert all(item["status"] == "completed" for item in job["items"])
    assert all(item["imageUrl"].startswith("/uploads/") for item in job["items"])

    items = await _items(session_factory)
    assert [item.name for item in items] == ["a", "b"]
    assert {item["itemId"] for item in job["items"]} == {str(item.id) for item in items}


async def test_direct_upload_duplicates(
    client: httpx.AsyncClient,
    manager: ImportJobManager,
    image_bytes: Callable[..., bytes],
):
    data = image_bytes(3)
    res = await client.post(
        "/api/imports",
        data=FORM,
        files=[
            ("images", ("one.png", data, "image/png")),
            ("images", ("two.png", data, "image/png")),
        ],
    )
    job_id = res.json()["id"]

    await manager.wait_idle()

    job = (await client.get(f"/api/imports/{job_id}")).json()
    assert (job["completed"], job["failed"]) == (1, 1)
    assert job["items"][1]["error"] == "Duplicate image detected."


async def test_direct_upload_json_tags(
    client: httpx.AsyncClient,
    manager: ImportJobManager,
    image_bytes: Callable[..., bytes],
):
    res = await client.post(
        "/api/imports",
        data={**FORM, "tags": json.dumps(["Beach", "Summer"])},
        files=[("images", ("a.png", image_bytes(4), "image/png"))],
    )

    assert res.status_code == 200
    assert res.json()["defaults"]["tags"] == ["Beach", "Summer"]
    await manager.wait_idle()


async def test_direct_upload_requires_images(client: httpx.AsyncClient):
    res = await client.post("/api/imports", data=FORM)

    assert res.status_code == 400
    assert res.json() == {"error": "No images uploaded"}


async def test_direct_upload_requires_fields(
    client: httpx.AsyncClient, image_bytes: Callable[..., bytes]
):
    res = await client.post(
        "/api/imports",
        data={"type": "TOP", "category": "Imported"},
        files=[("images", ("a.png", image_bytes(5), "image/png"))],
    )

    assert res.status_code == 400
    assert res.json() == {"error": "Type, category, and color are required"}


async def test_direct_upload_rejects_non_images(client: httpx.AsyncClient):
    res = await client.post(
        "/api/imports",
        data=FORM,
        files=[("images", ("notes.txt", b"hello", "text/plain"))],
    )

    assert res.status_code == 400
    assert "Invalid file type" in res.json()["error"]


async def test_csv_import(
    client: httpx.AsyncClient,
    manager: ImportJobManager,
    storage: ImageStorage,
    session_factory: async_sessionmaker[AsyncSession],
    image_bytes: Callable[..., bytes],
    zip_bytes: Callable[[dict[str, bytes]], bytes],
):
    archive = zip_bytes({"A.PNG": image_bytes(6), "shorts.jpg": image_bytes(7, fmt="JPEG")})
    manifest = (
        "filename,name,type,tags\n"
        "a.png,Linen shirt,,Beach\n"
        "shorts,Cargo shorts,BOTTOM,Beach\n"
        ",No file,,\n"
        "missing.png,,,\n"
    )
    res = await client.post(
        "/api/imports/csv",
        data=FORM,
        files={
            "csv": ("items.csv", manifest.encode(), "text/csv"),
            "zip": ("photos.zip", archive, "application/zip"),
        },
    )
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 4
    assert body["failed"] == 2
    assert body["items"][2]["error"] == "Missing filename in CSV."
    assert body["items"][3]["error"] == "File not found in ZIP."

    await manager.wait_idle()

    job = (await client.get(f"/api/imports/{body['id']}")).json()
    assert job["status"] == "completed"
    assert (job["completed"], job["failed"]) == (2, 2)

    items = await _items(session_factory)
    assert [(item.name, item.type) for item in items] == [
        ("Cargo shorts", "BOTTOM"),
        ("Linen shirt", "TOP"),
    ]
    shared = {tuple(link.tag_id for link in item.tag_links) for item in items}
    assert len(shared) == 1
    # Uploaded manifest and archive do not linger in storage.
    assert not list(storage.root.glob("manifest-*"))
    assert not list(storage.root.glob("archive-*"))


async def test_csv_import_requires_both_files(client: httpx.AsyncClient):
    res = await client.post(
        "/api/imports/csv",
        data=FORM,
        files={"csv": ("items.csv", b"filename\na.png\n", "text/csv")},
    )

    assert res.status_code == 400
    assert res.json() == {"error": "CSV and ZIP files are required"}


async def test_csv_import_empty_manifest(
    client: httpx.AsyncClient,
    image_bytes: Callable[..., bytes],
    zip_bytes: Callable[[dict[str, bytes]], bytes],
):
    res = await client.post(
        "/api/imports/csv",
        files={
            "csv": ("items.csv", b"filename,name\n", "text/csv"),
            "zip": ("photos.zip", zip_bytes({"a.png": image_bytes(8)}), "application/zip"),
        },
    )

    assert res.status_code == 400
    assert res.json() == {"error": "CSV contains no data rows"}


async def test_csv_import_parse_failure(
    client: httpx.AsyncClient,
    image_bytes: Callable[..., bytes],
    zip_bytes: Callable[[dict[str, bytes]], bytes],
):
    res = await client.post(
        "/api/imports/csv",
        files={
            "csv": ("items.csv", b'filename,name\n"a.png,A\n', "text/csv"),
            "zip": ("photos.zip", zip_bytes({"a.png": image_bytes(9)}), "application/zip"),
        },
    )

    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "CSV parse failed"
    assert body["details"]


async def test_csv_import_bad_archive(client: httpx.AsyncClient):
    res = await client.post(
        "/api/imports/csv",
        files={
            "csv": ("items.csv", b"filename\na.png\n", "text/csv"),
            "zip": ("photos.zip", b"not a zip file", "application/zip"),
        },
    )

    assert res.status_code == 400
    assert res.json() == {"error": "Invalid ZIP archive"}


async def test_get_nonexistent_job(client: httpx.AsyncClient):
    res = await client.get("/api/imports/does-not-exist")

    assert res.status_code == 404
    assert res.json() == {"error": "Import job not found"}


async def test_health(client: httpx.AsyncClient):
    res = await client.get("/api/health")

    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


async def test_csv_import_rejects_ragged_rows(
    client: httpx.AsyncClient,
    storage: ImageStorage,
    image_bytes: Callable[..., bytes],
    zip_bytes: Callable[[dict[str, bytes]], bytes],
):
    res = await client.post(
        "/api/imports/csv",
        data=FORM,
        files={
            "csv": ("items.csv", b"filename,name,type\na.png\n", "text/csv"),
            "zip": ("photos.zip", zip_bytes({"a.png": image_bytes(10)}), "application/zip"),
        },
    )

    assert res.status_code == 400
    assert res.json() == {
        "error": "CSV parse failed",
        "details": ["Row 1: expected 3 fields, saw 1"],
    }
    assert not list(storage.root.iterdir())


async def test_direct_upload_cleans_up_when_job_cannot_start(
    client: httpx.AsyncClient,
    manager: ImportJobManager,
    storage: ImageStorage,
    image_bytes: Callable[..., bytes],
    monkeypatch,
):
    def fail_create_job(*args, **kwargs):
        raise RuntimeError("queue unavailable")

    monkeypatch.setattr(manager, "create_job", fail_create_job)

    res = await client.post(
        "/api/imports",
        data=FORM,
        files=[("images", ("a.png", image_bytes(11), "image/png"))],
    )

    assert res.status_code == 500
    assert res.json() == {"error": "Failed to start import"}
    assert not list(storage.root.glob("item-*"))
