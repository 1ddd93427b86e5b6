from __future__ import annotations

from fastapi import Request

from wardrobe.services.import_manager import ImportJobManager
from wardrobe.services.storage import ImageStorage


def get_import_manager(request: Request) -> ImportJobManager:
    return request.app.state.import_manager


def get_storage(request: Request) -> ImageStorage:
    return request.app.state.storage
