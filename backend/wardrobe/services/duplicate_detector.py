"""Perceptual fingerprints and intra-job duplicate detection."""

from __future__ import annotations

from pathlib import Path
from typing import Final

import numpy as np
from PIL import Image, ImageOps

DUPLICATE_ERROR: Final[str] = "Duplicate image detected."
DEFAULT_THRESHOLD: Final[int] = 6

_HASH_SIZE: Final[int] = 32
_REDUCED_SIZE: Final[int] = 8
_DCT_MATRIX: np.ndarray | None = None


class DuplicateImageError(Exception):
    def __init__(self, message: str = DUPLICATE_ERROR) -> None:
        super().__init__(message)


def _get_dct_matrix(size: int) -> np.ndarray:
    """Return a cached DCT-II transform matrix of the given size."""

    global _DCT_MATRIX
    if _DCT_MATRIX is not None and _DCT_MATRIX.shape == (size, size):
        return _DCT_MATRIX

    n = np.arange(size, dtype=np.float64)
    k = n[:, None]
    mat = np.cos((2.0 * n + 1.0) * k * np.pi / size)
    mat[0, :] *= np.sqrt(1.0 / size)
    mat[1:, :] *= np.sqrt(2.0 / size)

    _DCT_MATRIX = mat
    return mat


def perceptual_hash(image: Image.Image) -> int:
    """Compute a 64-bit DCT perceptual hash.

    - Convert to grayscale and resize to 32×32 pixels.
    - Apply a 2D DCT (type II) over the 32×32 matrix.
    - Keep the top-left 8×8 low-frequency block (including the DC term).
    - Set a bit to 1 when ``coeff > median`` of that block.

    Args:
        image: PIL Image instance to hash.

    Returns:
        The hash as an unsigned integer.
    """

    gray = image.convert("L").resize((_HASH_SIZE, _HASH_SIZE), resample=Image.Resampling.LANCZOS)
    pixels = np.asarray(gray, dtype=np.float64)

    dct_mat = _get_dct_matrix(_HASH_SIZE)
    dct = dct_mat @ pixels @ dct_mat.T

    low_freq = dct[:_REDUCED_SIZE, :_REDUCED_SIZE]
    bits = (low_freq > np.median(low_freq)).flatten()

    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return value


def compute_fingerprint(path: Path) -> int:
    """Fingerprint the file at ``path`` after applying its EXIF orientation."""

    with Image.open(path) as img:
        return perceptual_hash(ImageOps.exif_transpose(img))


def hamming_distance(a: int, b: int) -> int:
    return (a ^ b).bit_count()


class DuplicateDetector:
    """Fingerprints accepted so far during one job's processing run."""

    def __init__(self, threshold: int = DEFAULT_THRESHOLD) -> None:
        self.threshold = threshold
        self._accepted: list[int] = []

    def __len__(self) -> int:
        return len(self._accepted)

    def find_match(self, fingerprint: int) -> int | None:
        for accepted in self._accepted:
            if hamming_distance(fingerprint, accepted) <= self.threshold:
                return accepted
        return None

    def is_duplicate(self, fingerprint: int) -> bool:
        return self.find_match(fingerprint) is not None

    def check(self, fingerprint: int) -> None:
        if self.is_duplicate(fingerprint):
            raise DuplicateImageError()

    def accept(self, fingerprint: int) -> None:
        self._accepted.append(fingerprint)
