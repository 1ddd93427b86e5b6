from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from PIL import Image, ImageColor, ImageEnhance, ImageOps, UnidentifiedImageError

from wardrobe.config import Settings
from wardrobe.plugins.base import BackgroundRemoverPlugin
from wardrobe.services.storage import ImageStorage

logger = logging.getLogger(__name__)


class ImageProcessingError(Exception):
    """The source image could not be turned into a catalog image."""


@dataclass(frozen=True)
class CanvasStyle:
    width: int = 900
    height: int = 1200
    brightness: float = 1.03
    saturation: float = 1.05
    background_top: str = "#f2f4f7"
    background_bottom: str = "#dfe5ec"

    @classmethod
    def from_settings(cls, settings: Settings) -> CanvasStyle:
        return cls(
            width=settings.IMAGE_CANVAS_WIDTH,
            height=settings.IMAGE_CANVAS_HEIGHT,
            brightness=settings.IMAGE_BRIGHTNESS,
            saturation=settings.IMAGE_SATURATION,
            background_top=settings.IMAGE_BACKGROUND_TOP,
            background_bottom=settings.IMAGE_BACKGROUND_BOTTOM,
        )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


# ---------------------------------------------------------------------------
# Image primitives
# ---------------------------------------------------------------------------

def load_oriented(path: Path) -> Image.Image:
    """Open ``path`` with its EXIF rotation applied, as RGBA."""
    with Image.open(path) as img:
        oriented = ImageOps.exif_transpose(img)
        return oriented.convert("RGBA")


def trim_transparent(image: Image.Image) -> Image.Image:
    bbox = image.getchannel("A").getbbox()
    if bbox is None:
        return image
    return image.crop(bbox)


def adjust_colors(image: Image.Image, brightness: float, saturation: float) -> Image.Image:
    """Brighten and saturate the colour channels, leaving alpha untouched."""
    alpha = image.getchannel("A")
    rgb = image.convert("RGB")
    rgb = ImageEnhance.Brightness(rgb).enhance(brightness)
    rgb = ImageEnhance.Color(rgb).enhance(saturation)
    rgb.putalpha(alpha)
    return rgb


def fit_to_canvas(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    fitted = ImageOps.contain(image, size, method=Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", size, (255, 255, 255, 0))
    offset = ((size[0] - fitted.width) // 2, (size[1] - fitted.height) // 2)
    canvas.paste(fitted, offset)
    return canvas


def vertical_gradient(size: tuple[int, int], top: str, bottom: str) -> Image.Image:
    width, height = size
    top_rgb = np.array(ImageColor.getrgb(top)[:3], dtype=np.float64)
    bottom_rgb = np.array(ImageColor.getrgb(bottom)[:3], dtype=np.float64)

    ramp = np.linspace(0.0, 1.0, height, dtype=np.float64)[:, None]
    rows = top_rgb * (1.0 - ramp) + bottom_rgb * ramp
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., :3] = np.round(rows)[:, None, :].astype(np.uint8)
    pixels[..., 3] = 255
    return Image.fromarray(pixels)


def composite_on_gradient(image: Image.Image, style: CanvasStyle) -> Image.Image:
    foreground = fit_to_canvas(image, style.size)
    background = vertical_gradient(style.size, style.background_top, style.background_bottom)
    return Image.alpha_composite(background, foreground).convert("RGB")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class ImagePipeline:
    """Turns an arbitrary source photo into a standardized catalog image.

    Stage 1 cuts the garment out with the segmentation backend when enabled;
    any failure there is logged and the original photo is used instead.
    Stage 2 trims, recolours and composites onto the gradient canvas. Only a
    failure in stage 2 is raised, as :class:`ImageProcessingError`.
    """

    def __init__(
        self,
        storage: ImageStorage,
        *,
        style: CanvasStyle | None = None,
        background_removal: bool = True,
        segmenter: BackgroundRemoverPlugin | None = None,
    ) -> None:
        self.storage = storage
        self.style = style or CanvasStyle()
        self.background_removal = background_removal
        self.segmenter = segmenter

    async def process(self, source: Path) -> str:
        return await asyncio.to_thread(self.process_sync, source)

    def process_sync(self, source: Path) -> str:
        cutout = self.remove_background(source)
        output = self.standardize(cutout or source, trim=cutout is not None)
        return self.storage.url_for(output)

    def remove_background(self, source: Path) -> Path | None:
        if not self.background_removal:
            return None
        if self.segmenter is None:
            logger.warning("Background removal enabled but no segmenter is registered")
            return None

        try:
            image = load_oriented(source)
            cutout = self.segmenter.segment(image)
            output = self.storage.path_for(f"{source.stem}-cutout.png")
            cutout.save(output, format="PNG")
        except Exception:
            logger.exception("Background removal failed for %s, using original image", source.name)
            return None
        return output

    def standardize(self, source: Path, *, trim: bool = False) -> Path:
        output = self.storage.path_for(f"{source.stem}-standard.png")
        try:
            image = load_oriented(source)
            if trim:
                image = trim_transparent(image)
            image = adjust_colors(image, self.style.brightness, self.style.saturation)
            composed = composite_on_gradient(image, self.style)
            self.storage.ensure()
            composed.save(output, format="PNG")
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            raise ImageProcessingError(f"Could not process image {source.name}: {exc}") from exc
        return output
