"""Keyword extraction and search-term generation for Mercado Livre queries."""

from __future__ import annotations

import re
import unicodedata
from typing import NamedTuple

MAX_TITLE_CHARS = 200
SEARCH_TERM_LIMIT = 6

# Marketing filler and connectors that never help a search
_STOP_EXACT = frozenset(
    "frete gratis free shipping novo nova new oferta produto original "
    "promocao promo para de da do das dos com sem e o a os as em um uma "
    "por the and for with hot sale 2023 2024 2025 2026 pcs pc lot".split()
)

# Stem prefixes for AliExpress title jargon
_JUNK_STEMS = (
    "dropship", "wholesal", "atacad", "bestsell", "factory", "fabric",
    "lancament", "envio",
)


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_title(title: str) -> str:
    """Lowercase, strip accents and punctuation, collapse spaces, cap length."""
    if not title:
        return ""
    cleaned = re.sub(r"[^\w\s-]+", " ", _fold(title)[:MAX_TITLE_CHARS])
    return re.sub(r"\s+", " ", cleaned).strip()


def _is_junk_word(word: str) -> bool:
    if word in _STOP_EXACT:
        return True
    return any(word.startswith(stem) for stem in _JUNK_STEMS)


def extract_keywords(title: str, limit: int = 10) -> list[str]:
    """Extract meaningful keywords from a product title.

    Args:
        title: Product title in any Latin-script language
        limit: Maximum number of keywords to extract (default 10)

    Returns:
        List of keywords (lowercase, accent-free, deduplicated, stopwords removed)

    Example:
        >>> extract_keywords("Fone de Ouvido Bluetooth Sem Fio TWS Frete Grátis")
        ['fone', 'ouvido', 'bluetooth', 'fio', 'tws']
    """
    if not title:
        return []

    seen = set()
    keywords = []

    for word in normalize_title(title).split():
        word = word.strip("-_")
        # Filter: duplicates, short words (<= 2 chars), bare numbers, stopwords/junk
        if word in seen or len(word) <= 2 or word.isdigit() or _is_junk_word(word):
            continue

        seen.add(word)
        keywords.append(word)

        if len(keywords) >= limit:
            break

    return keywords


class SearchTerms(NamedTuple):
    base: str
    strict: str
    broad: str
    tokens: tuple[str, ...]


def build_search_terms(title: str, limit: int = SEARCH_TERM_LIMIT) -> SearchTerms:
    """Build the base/strict/broad marketplace queries for a title.

    Example:
        >>> build_search_terms("Kit 3 Organizador De Gaveta Plástico Cozinha").base
        'kit organizador gaveta plastico cozinha'
    """
    tokens = tuple(extract_keywords(title, limit=limit))
    if not tokens:
        fallback = normalize_title(title)
        return SearchTerms(fallback, fallback, fallback, ())
    return SearchTerms(
        base=" ".join(tokens),
        strict=" ".join(f'"{t}"' for t in tokens[:4]),
        broad=" ".join(tokens[:3]),
        tokens=tokens,
    )


def jaccard_similarity(title_a: str, title_b: str) -> float:
    """Word-set Jaccard similarity of two titles, 0-100.

    Only words longer than two characters count.
    """
    words_a = {w for w in normalize_title(title_a).split() if len(w) > 2}
    words_b = {w for w in normalize_title(title_b).split() if len(w) > 2}
    if not words_a or not words_b:
        return 0.0
    return round(len(words_a & words_b) / len(words_a | words_b) * 100, 2)


def keyword_compatibility(source_title: str, listing_title: str) -> float:
    """Share of the source title's search keywords present in the listing, 0-100."""
    source_terms = extract_keywords(source_title, limit=SEARCH_TERM_LIMIT)
    if not source_terms:
        return 0.0
    listing_terms = set(extract_keywords(listing_title, limit=50))
    found = sum(1 for term in source_terms if term in listing_terms)
    return round(found / len(source_terms) * 100, 2)
