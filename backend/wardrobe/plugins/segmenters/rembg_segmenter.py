from __future__ import annotations

import logging
import threading
from typing import Any

from PIL import Image

from wardrobe.config import settings
from wardrobe.plugins import registry
from wardrobe.plugins.base import BackgroundRemoverPlugin

logger = logging.getLogger(__name__)

# Quality/speed presets exposed through BG_REMOVAL_MODEL.
MODEL_NAMES = {
    "small": "u2netp",
    "medium": "u2net",
    "large": "isnet-general-use",
}


class RembgSegmenter(BackgroundRemoverPlugin):
    """Background removal backed by rembg's ONNX segmentation models.

    The rembg module and its model session are loaded on first use and kept
    for the lifetime of the process.
    """

    name = "rembg"

    def __init__(self, model: str | None = None) -> None:
        self.model = model
        self._session: Any = None
        self._remove: Any = None
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        preset = self.model or settings.BG_REMOVAL_MODEL
        return MODEL_NAMES.get(preset, MODEL_NAMES["small"])

    def _load(self) -> tuple[Any, Any]:
        with self._lock:
            if self._session is None:
                from rembg import new_session, remove

                logger.info("Loading rembg session with model %s", self.model_name)
                self._session = new_session(self.model_name)
                self._remove = remove
        return self._remove, self._session

    def segment(self, image: Image.Image) -> Image.Image:
        remove, session = self._load()
        result = remove(image, session=session)
        if not isinstance(result, Image.Image):
            raise RuntimeError("rembg returned an unexpected result type")
        return result.convert("RGBA")


def register_plugin() -> None:
    registry.register("segmenter", RembgSegmenter())
