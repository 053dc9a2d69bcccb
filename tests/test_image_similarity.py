"""Tests for perceptual hashing and the image comparator."""

import pytest

from vetting.analyze.image_similarity import (
    ImageComparator,
    hamming_distance,
    hash_to_hex,
    perceptual_hash,
    similarity_from_distance,
)

from tests.conftest import FakeFetcher, noise_png


def test_identical_images_hash_equal():
    """Same bytes, same signature."""
    assert perceptual_hash(noise_png(1)) == perceptual_hash(noise_png(1))


def test_hash_reads_files(tmp_path):
    """Paths and bytes give the same signature."""
    path = tmp_path / "a.png"
    path.write_bytes(noise_png(3))
    assert perceptual_hash(path) == perceptual_hash(noise_png(3))


def test_unreadable_image_raises_value_error():
    """Garbage bytes are reported as ValueError."""
    with pytest.raises(ValueError):
        perceptual_hash(b"not an image")


def test_hamming_and_similarity():
    """Bit distance maps to a percentage of equal bits."""
    assert hamming_distance(0b1011, 0b0001) == 2
    assert similarity_from_distance(0) == 100.0
    assert similarity_from_distance(16) == 75.0
    assert hash_to_hex(255) == "00000000000000ff"


@pytest.mark.asyncio
async def test_compare_many_scores_listings(tmp_path):
    """The copy scores 100, an unrelated image scores low, a broken URL is recorded."""
    fetcher = FakeFetcher({
        "https://img/src.jpg": noise_png(1),
        "https://img/same.jpg": noise_png(1),
        "https://img/other.jpg": noise_png(2),
    })
    comparator = ImageComparator(fetcher, temp_root=tmp_path)

    error, comparisons = await comparator.compare_many(
        "https://img/src.jpg", ["https://img/same.jpg", "https://img/other.jpg", "https://img/gone.jpg", ""],
    )

    assert error is None
    same, other, gone, empty = comparisons
    assert same.similarity == 100.0 and same.distance == 0
    assert other.similarity < 80
    assert gone.similarity is None and "download failed" in gone.error
    assert empty.error == "no image"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_source_failure_is_reported(tmp_path):
    """A broken source image marks every comparison and cleans up."""
    comparator = ImageComparator(FakeFetcher(), temp_root=tmp_path)

    error, comparisons = await comparator.compare_many("https://img/src.jpg", ["https://img/a.jpg"])

    assert "download failed" in error
    assert comparisons[0].error == "source image unavailable"
    assert list(tmp_path.iterdir()) == []


class _ExplodingFetcher:
    async def fetch(self, url: str) -> bytes:
        raise RuntimeError("disk full")


@pytest.mark.asyncio
async def test_unexpected_errors_propagate_and_clean_up(tmp_path):
    """Unknown errors are not swallowed, and no temp files are left behind."""
    comparator = ImageComparator(_ExplodingFetcher(), temp_root=tmp_path)

    with pytest.raises(RuntimeError):
        await comparator.compare_many("https://img/src.jpg", ["https://img/a.jpg"])

    assert list(tmp_path.iterdir()) == []
