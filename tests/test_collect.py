"""Tests for the JSON file collector."""

import json

import pytest

from vetting.collect.json_file_source import JsonFileCollector


def _write(path, payload):
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.mark.asyncio
async def test_loads_list_with_aliases(tmp_path):
    """Portuguese keys and scraped strings are normalized."""
    path = _write(tmp_path / "candidates.json", [
        {"id": 7, "titulo": "Garrafa Térmica Inox", "preco": "US $4,50", "categoria": "Casa",
         "vendas": "1.234 vendidos", "avaliacoes": "2k+", "rating": "4,7", "pedidos": 300,
         "image_url": "https://ae01.alicdn.com/kf/a.jpg"},
    ])

    products = await JsonFileCollector(path).collect()

    assert len(products) == 1
    p = products[0]
    assert (p.id, p.title, p.category) == ("7", "Garrafa Térmica Inox", "Casa")
    assert p.price == pytest.approx(4.5)
    assert (p.sales, p.reviews, p.orders) == (1234, 2000, 300)
    assert p.image_urls == ("https://ae01.alicdn.com/kf/a.jpg",)


@pytest.mark.asyncio
async def test_wrapped_payload_filter_and_limit(tmp_path):
    """A {"products": [...]} file is accepted, filtered by category and capped."""
    items = [{"title": f"Item {i}", "price": 3, "category": "Casa" if i % 2 else "Beleza"} for i in range(6)]
    path = _write(tmp_path / "c.json", {"products": items})

    homes = await JsonFileCollector(path).collect(category="casa", limit=2)

    assert [p.title for p in homes] == ["Item 1", "Item 3"]
    assert homes[0].id == "candidate-1"


@pytest.mark.asyncio
async def test_invalid_items_are_skipped(tmp_path):
    """A malformed entry does not spoil the file."""
    path = _write(tmp_path / "c.json", [
        {"id": "ok", "title": "Kit", "price": 2},
        {"id": "bad", "title": "Kit", "price": 2, "seller": "not an object"},
    ])

    products = await JsonFileCollector(path).collect()

    assert [p.id for p in products] == ["ok"]


@pytest.mark.asyncio
async def test_missing_or_broken_file(tmp_path):
    """Missing and unreadable files yield no candidates."""
    assert await JsonFileCollector(tmp_path / "nope.json").collect() == []
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert await JsonFileCollector(broken).collect() == []
