from __future__ import annotations

import io
import zipfile
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import httpx
import numpy as np
import pytest
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wardrobe.api.deps import get_import_manager, get_storage
from wardrobe.database import Base
from wardrobe.main import app
from wardrobe.models import *  # noqa: F401, F403 ensure all models are loaded
from wardrobe.services.image_pipeline import CanvasStyle, ImagePipeline
from wardrobe.services.import_manager import ImportJobManager
from wardrobe.services.storage import ImageStorage

# Small canvas keeps the pipeline fast in tests.
TEST_STYLE = CanvasStyle(width=90, height=120)


def make_image_bytes(seed: int, fmt: str = "PNG", size: tuple[int, int] = (96, 96)) -> bytes:
    """Encode a deterministic noise pattern; distinct seeds give distinct fingerprints."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(12, 12, 3), dtype=np.uint8)
    image = Image.fromarray(pixels, "RGB").resize(size, Image.Resampling.NEAREST)
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


def make_zip(files: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


@pytest.fixture()
def image_bytes() -> Callable[..., bytes]:
    return make_image_bytes


@pytest.fixture()
def zip_bytes() -> Callable[[dict[str, bytes]], bytes]:
    return make_zip


@pytest.fixture()
def storage(tmp_path: Path) -> ImageStorage:
    image_storage = ImageStorage(tmp_path / "uploads", "/uploads")
    image_storage.ensure()
    return image_storage


@pytest.fixture()
def pipeline(storage: ImageStorage) -> ImagePipeline:
    return ImagePipeline(storage, style=TEST_STYLE, background_removal=False)


@pytest.fixture()
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
async def async_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def manager(
    session_factory: async_sessionmaker[AsyncSession], pipeline: ImagePipeline
) -> AsyncGenerator[ImportJobManager]:
    import_manager = ImportJobManager(session_factory, pipeline, duplicate_threshold=6)
    yield import_manager
    await import_manager.stop()


@pytest.fixture()
async def client(
    manager: ImportJobManager, storage: ImageStorage
) -> AsyncGenerator[httpx.AsyncClient]:
    app.dependency_overrides[get_import_manager] = lambda: manager
    app.dependency_overrides[get_storage] = lambda: storage

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
