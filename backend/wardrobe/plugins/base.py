from __future__ import annotations

from abc import ABC, abstractmethod

from PIL import Image


class BackgroundRemoverPlugin(ABC):
    name: str = ""

    @abstractmethod
    def segment(self, image: Image.Image) -> Image.Image:
        """Return ``image`` as RGBA with background pixels made transparent."""
