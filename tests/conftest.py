"""Shared fixtures and fakes for the vetting tests."""

import asyncio
import io
import random

import pytest
from PIL import Image

from vetting.collect.base import MarketplaceSearch
from vetting.config import VettingConfig
from vetting.errors import NetworkError
from vetting.models import CandidateProduct, MatchCandidate


def noise_png(seed: int, size: int = 64) -> bytes:
    """Deterministic random grayscale image as PNG bytes."""
    rng = random.Random(seed)
    img = Image.frombytes("L", (size, size), bytes(rng.randrange(256) for _ in range(size * size)))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeFetcher:
    """Serves images from a dict; unknown URLs raise NetworkError."""

    def __init__(self, images: dict[str, bytes] | None = None, fail: set[str] | None = None):
        self.images = images or {}
        self.fail = fail or set()
        self.calls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if url in self.fail or url not in self.images:
            raise NetworkError("download failed", url=url)
        return self.images[url]


class FakeSearch(MarketplaceSearch):
    def __init__(self, listings=None, delay: float = 0.0, error: Exception | None = None):
        self.listings = listings or []
        self.delay = delay
        self.error = error
        self.queries: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search(self, query: str, limit: int = 10):
        self.queries.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return [l.model_copy() for l in self.listings[:limit]]
        finally:
            self.in_flight -= 1


class FixedSemanticScorer:
    def __init__(self, score: float):
        self.score = score

    async def semantic_score(self, title_a: str, title_b: str) -> float:
        return self.score


@pytest.fixture
def config() -> VettingConfig:
    return VettingConfig().with_overrides(
        use_images=False,
        batch={"start_delay": 0.0},
        http={"base_delay": 0.0},
    )


@pytest.fixture
def make_candidate():
    def _make(**overrides) -> CandidateProduct:
        data = {
            "id": "c1",
            "title": "Organizador Gaveta Cozinha Inox",
            "category": "Casa",
            "price": 10.0,
            "sales": 1000,
            "reviews": 200,
            "rating": 4.8,
            "orders": 300,
            "image_urls": ["https://ae01.alicdn.com/kf/source.jpg"],
        }
        data.update(overrides)
        return CandidateProduct(**data)

    return _make


@pytest.fixture
def make_listing():
    def _make(title: str = "Organizador Gaveta Cozinha Inox", price: float = 125.0, image: str = "", **kw) -> MatchCandidate:
        return MatchCandidate(title=title, price=price, image_urls=[image] if image else [], **kw)

    return _make
