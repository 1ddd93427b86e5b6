from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from wardrobe.api import imports
from wardrobe.config import settings
from wardrobe.database import async_session_factory, create_tables
from wardrobe.logging_setup import configure_logging
from wardrobe.plugins import registry
from wardrobe.services.image_pipeline import CanvasStyle, ImagePipeline
from wardrobe.services.import_manager import ImportJobManager
from wardrobe.services.storage import ImageStorage

storage = ImageStorage(settings.UPLOAD_DIR, settings.UPLOAD_URL_PREFIX)


def build_import_manager(image_storage: ImageStorage) -> ImportJobManager:
    pipeline = ImagePipeline(
        image_storage,
        style=CanvasStyle.from_settings(settings),
        background_removal=settings.BG_REMOVAL_ENABLED,
        segmenter=registry.get("segmenter", settings.BG_REMOVAL_BACKEND),
    )
    return ImportJobManager(
        async_session_factory,
        pipeline,
        duplicate_threshold=settings.DUPLICATE_HASH_THRESHOLD,
        job_ttl_seconds=settings.IMPORT_JOB_TTL_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    configure_logging()
    registry.discover()
    await create_tables()
    storage.ensure()

    manager = build_import_manager(storage)
    app.state.storage = storage
    app.state.import_manager = manager
    manager.start()
    try:
        yield
    finally:
        await manager.stop()


app = FastAPI(title="Wardrobe API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)


api_prefix = "/api"
app.include_router(imports.router, prefix=api_prefix)
app.mount(
    settings.UPLOAD_URL_PREFIX,
    StaticFiles(directory=storage.root, check_dir=False),
    name="uploads",
)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok"}
