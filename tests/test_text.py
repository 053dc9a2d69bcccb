"""Tests for number parsing, category normalization, keywords and title similarity."""

import math

import pytest

from vetting.analyze.keywords import (
    build_search_terms,
    extract_keywords,
    jaccard_similarity,
    keyword_compatibility,
    normalize_title,
)
from vetting.analyze.text_similarity import TitleComparator
from vetting.categories import Category, normalize_category, policy_for
from vetting.parsing import parse_count, parse_price, parse_rating

from tests.conftest import FixedSemanticScorer


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1.234 vendidos", 1234),
        ("2k+", 2000),
        ("1.5 mil", 1500),
        ("350 pedidos", 350),
        (42, 42),
        (-5, 0),
        (None, 0),
        ("", 0),
        (math.nan, 0),
    ],
)
def test_parse_count(raw, expected):
    """Scraped counts become non-negative ints."""
    assert parse_count(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("R$ 1.234,56", 1234.56),
        ("US $1,234.56", 1234.56),
        ("1.234", 1234.0),
        ("19,9", 19.9),
        ("12", 12.0),
        ("sem preco", 0.0),
        (None, 0.0),
    ],
)
def test_parse_price(raw, expected):
    """Both decimal notations are understood."""
    assert parse_price(raw) == pytest.approx(expected)


def test_parse_rating():
    """Ratings use a comma or dot."""
    assert parse_rating("4,8") == pytest.approx(4.8)
    assert parse_rating("4.5 de 5") == pytest.approx(4.5)


@pytest.mark.parametrize(
    "label,category",
    [
        ("Eletrônicos", Category.ELECTRONICS),
        ("celulares", Category.PHONES),
        ("Casa", Category.HOME),
        ("Casa e Cozinha", Category.KITCHEN),
        ("casa inteligente eletronicos", Category.ELECTRONICS),
        ("Beleza", Category.BEAUTY),
        ("toys", Category.TOYS),
        ("acessorios", Category.OTHER),
        ("", Category.OTHER),
        (None, Category.OTHER),
        (Category.GARDEN, Category.GARDEN),
    ],
)
def test_normalize_category(label, category):
    """Labels in any language map to the canonical enum."""
    assert normalize_category(label) == category


def test_category_policies():
    """Sensitive goods carry higher tax; home goods ship heavier."""
    assert policy_for(Category.PHONES).sensitive is True
    assert policy_for(Category.PHONES).tax_multiplier == pytest.approx(1.2)
    assert policy_for(Category.HOME).safe is True
    assert policy_for(Category.HOME).shipping_multiplier == pytest.approx(1.3)
    assert policy_for(Category.OTHER, policies={}).sensitive is False


def test_normalize_title_folds_and_caps():
    """Accents and punctuation go, length is capped."""
    assert normalize_title("Organizador  de Gaveta, Plástico!") == "organizador de gaveta plastico"
    assert len(normalize_title("a" * 500)) <= 200


def test_extract_keywords_drops_filler():
    """Stopwords, numbers, short words and marketing jargon are removed."""
    title = "Fone de Ouvido Bluetooth Sem Fio TWS Frete Grátis 2024 Dropshipping"
    assert extract_keywords(title) == ["fone", "ouvido", "bluetooth", "fio", "tws"]
    assert extract_keywords(title, limit=2) == ["fone", "ouvido"]
    assert extract_keywords("") == []


def test_build_search_terms():
    """Base, strict and broad queries from one title."""
    terms = build_search_terms("Kit 3 Organizador De Gaveta Plástico Cozinha")
    assert terms.base == "kit organizador gaveta plastico cozinha"
    assert terms.broad == "kit organizador gaveta"
    assert terms.strict.startswith('"kit"')
    assert build_search_terms("de 10").tokens == ()


def test_jaccard_similarity():
    """Word-set overlap on words longer than two characters."""
    assert jaccard_similarity("Garrafa Termica Inox", "garrafa térmica inox") == 100.0
    assert jaccard_similarity("garrafa termica", "garrafa plastico") == pytest.approx(33.33)
    assert jaccard_similarity("", "garrafa") == 0.0


def test_keyword_compatibility():
    """Share of source keywords present in the listing."""
    assert keyword_compatibility("Garrafa Termica Inox 1L", "Garrafa Térmica de Inox") == pytest.approx(100.0)
    assert keyword_compatibility("Garrafa Termica Inox Azul", "Garrafa Azul") == pytest.approx(50.0)
    assert keyword_compatibility("de e", "garrafa") == 0.0


@pytest.mark.asyncio
async def test_title_comparator_uses_scorer():
    """A healthy scorer wins and is clamped."""
    assert await TitleComparator(FixedSemanticScorer(87)).semantic("a", "b") == (87.0, "semantic")
    assert await TitleComparator(FixedSemanticScorer(150)).semantic("a", "b") == (100.0, "semantic")


class _BrokenScorer:
    async def semantic_score(self, title_a, title_b):
        raise RuntimeError("model unavailable")


@pytest.mark.asyncio
@pytest.mark.parametrize("scorer", [None, _BrokenScorer(), FixedSemanticScorer(math.nan)])
async def test_title_comparator_falls_back_to_keywords(scorer):
    """Missing, failing or NaN scorers fall back to Jaccard."""
    score, method = await TitleComparator(scorer).semantic("garrafa termica inox", "garrafa termica")
    assert method == "keyword"
    assert score == pytest.approx(66.67)
