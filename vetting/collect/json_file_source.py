"""Collector that reads candidate products from a local JSON file.

The file is the hand-off point from the primary-marketplace scraper: a list of
objects with the `CandidateProduct` fields (string metrics such as
"1.234 vendidos" are accepted).
"""

from __future__ import annotations

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from vetting.config import DATA_DIR
from vetting.models import CandidateProduct

from .base import BaseCollector

CANDIDATES_PATH = DATA_DIR / "candidates.json"

# Keys some scrapers export under other names
_FIELD_ALIASES = {
    "name": "title",
    "titulo": "title",
    "nome": "title",
    "price_usd": "price",
    "preco": "price",
    "categoria": "category",
    "vendas": "sales",
    "avaliacoes": "reviews",
    "pedidos": "orders",
    "images": "image_urls",
    "imagens": "image_urls",
    "image_url": "image_urls",
    "url": "source_url",
    "link": "source_url",
}


def _rename(item: dict) -> dict:
    renamed = {}
    for key, value in item.items():
        target = _FIELD_ALIASES.get(key, key)
        if target not in renamed or key == target:
            renamed[target] = value
    return renamed


class JsonFileCollector(BaseCollector):
    """Reads candidates from a JSON file."""

    def __init__(self, file_path: Path | None = None):
        self.file_path = file_path or CANDIDATES_PATH

    async def collect(self, category: str = "all", limit: int = 20) -> list[CandidateProduct]:
        if not self.file_path.exists():
            logger.warning("No candidates file at {}", self.file_path)
            return []

        try:
            with open(self.file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to read candidates file: {}", e)
            return []

        if isinstance(data, dict):
            data = data.get("products") or data.get("candidates") or []
        if not data:
            logger.warning("Candidates file is empty")
            return []

        if category != "all":
            data = [p for p in data if str(p.get("category", "")).lower() == category.lower()]

        products = []
        for index, item in enumerate(data[:limit]):
            item = _rename(item)
            item.setdefault("id", item.get("source_url") or f"candidate-{index + 1}")
            try:
                products.append(CandidateProduct(**item))
            except ValidationError as e:
                logger.debug("Skipping candidate #{}: {}", index, e)
                continue

        logger.info("Loaded {} candidates from {} (category='{}')", len(products), self.file_path.name, category)
        return products
