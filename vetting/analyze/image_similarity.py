"""Perceptual-hash image comparison.

pHash: grayscale 32x32 -> 2D DCT -> top-left 8x8 block (DC excluded from the
median) -> 64-bit signature. Similar pictures differ in few bits.

Downloaded images are written to a temporary directory that lives only for one
comparison call and is removed on every exit path.
"""

from __future__ import annotations

import io
import math
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol, Union

from loguru import logger
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from vetting.errors import NetworkError

HASH_SIZE = 8
HIGHFREQ_FACTOR = 4
HASH_BITS = HASH_SIZE * HASH_SIZE


class ImageSource(Protocol):
    async def fetch(self, url: str) -> bytes:
        ...


@lru_cache(maxsize=4)
def _dct_matrix(n: int) -> tuple[tuple[float, ...], ...]:
    """Orthonormal DCT-II basis as rows."""
    rows = []
    for k in range(n):
        scale = math.sqrt(1.0 / n) if k == 0 else math.sqrt(2.0 / n)
        rows.append(tuple(scale * math.cos(math.pi * (2 * i + 1) * k / (2 * n)) for i in range(n)))
    return tuple(rows)


def _load(image: Union[bytes, str, Path]) -> Image.Image:
    if isinstance(image, (bytes, bytearray)):
        return Image.open(io.BytesIO(image))
    return Image.open(image)


def perceptual_hash(image: Union[bytes, str, Path]) -> int:
    """Compute a 64-bit pHash from image bytes or a file path.

    Raises:
        ValueError: if the data is not a readable image.
    """
    try:
        with _load(image) as img:
            size = HASH_SIZE * HIGHFREQ_FACTOR
            gray = img.convert("L").resize((size, size), Image.Resampling.LANCZOS)
            pixels = list(gray.tobytes())
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ValueError(f"unreadable image: {e}") from e

    n = HASH_SIZE * HIGHFREQ_FACTOR
    dct = _dct_matrix(n)
    matrix = [pixels[r * n:(r + 1) * n] for r in range(n)]

    # Only the low-frequency HASH_SIZE x HASH_SIZE corner is needed
    rows_dct = [
        [sum(dct[k][i] * row[i] for i in range(n)) for k in range(HASH_SIZE)]
        for row in matrix
    ]
    low = [
        [sum(dct[k][r] * rows_dct[r][c] for r in range(n)) for c in range(HASH_SIZE)]
        for k in range(HASH_SIZE)
    ]

    coeffs = [v for row in low for v in row]
    ac = sorted(coeffs[1:])
    mid = len(ac) // 2
    median = (ac[mid - 1] + ac[mid]) / 2 if len(ac) % 2 == 0 else ac[mid]

    signature = 0
    for v in coeffs:
        signature = (signature << 1) | (1 if v > median else 0)
    return signature


def hamming_distance(a: int, b: int) -> int:
    return bin(a ^ b).count("1")


def similarity_from_distance(distance: int, bits: int = HASH_BITS) -> float:
    """Share of equal bits as a percentage."""
    return round((bits - distance) / bits * 100, 2)


def hash_to_hex(signature: int) -> str:
    return f"{signature:0{HASH_BITS // 4}x}"


class ImageComparison(BaseModel):
    url: str
    similarity: Optional[float] = None
    distance: Optional[int] = None
    error: Optional[str] = None


class ImageComparator:
    """Compares one source image against many listing images."""

    def __init__(self, fetcher: ImageSource, temp_root: Optional[Path] = None):
        self.fetcher = fetcher
        self.temp_root = temp_root

    async def _hash_url(self, url: str, workdir: Path, index: int) -> int:
        data = await self.fetcher.fetch(url)
        path = workdir / f"img_{index}"
        path.write_bytes(data)
        return perceptual_hash(path)

    async def compare_many(self, source_url: str, listing_urls: list[str]) -> tuple[Optional[str], list[ImageComparison]]:
        """Hash the source image once and compare it with each listing image.

        Returns:
            (source_error, comparisons). source_error is set when the source
            image itself could not be fetched or decoded; per-listing failures
            are recorded on the matching comparison.
        """
        if self.temp_root is not None:
            self.temp_root.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="vetting_img_", dir=self.temp_root) as tmp:
            workdir = Path(tmp)
            try:
                source_hash = await self._hash_url(source_url, workdir, 0)
            except (NetworkError, ValueError) as e:
                logger.warning("Source image unusable {}: {}", source_url, e)
                return str(e), [ImageComparison(url=u, error="source image unavailable") for u in listing_urls]

            comparisons = []
            for i, url in enumerate(listing_urls, start=1):
                if not url:
                    comparisons.append(ImageComparison(url=url, error="no image"))
                    continue
                try:
                    listing_hash = await self._hash_url(url, workdir, i)
                except (NetworkError, ValueError) as e:
                    logger.debug("Listing image unusable {}: {}", url, e)
                    comparisons.append(ImageComparison(url=url, error=str(e)))
                    continue
                distance = hamming_distance(source_hash, listing_hash)
                comparisons.append(ImageComparison(
                    url=url,
                    distance=distance,
                    similarity=similarity_from_distance(distance),
                ))
            return None, comparisons
