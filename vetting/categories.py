"""Canonical product categories and their policy table.

Collectors deliver category names in whatever language and casing the source
marketplace uses ("Eletrônicos", "casa e cozinha", "phone_accessories" ...).
Everything downstream works with the `Category` enum instead, and reads
sensitivity and cost multipliers from `CATEGORY_POLICIES`.
"""

from __future__ import annotations

import re
import unicodedata
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Category(str, Enum):
    ELECTRONICS = "electronics"
    PHONES = "phones"
    COMPUTERS = "computers"
    HOME = "home"
    KITCHEN = "kitchen"
    GARDEN = "garden"
    DECOR = "decor"
    TOYS = "toys"
    SPORTS = "sports"
    CLOTHING = "clothing"
    BEAUTY = "beauty"
    OTHER = "other"


class CategoryPolicy(BaseModel):
    """Risk and cost policy for one canonical category."""

    model_config = ConfigDict(frozen=True)

    sensitive: bool = False
    safe: bool = False  # low-risk goods, qualifies for the qualitative category bonus
    tax_multiplier: float = 1.0
    shipping_multiplier: float = 1.0


CATEGORY_POLICIES: dict[Category, CategoryPolicy] = {
    Category.ELECTRONICS: CategoryPolicy(sensitive=True, tax_multiplier=1.2, shipping_multiplier=1.1),
    Category.PHONES: CategoryPolicy(sensitive=True, tax_multiplier=1.2, shipping_multiplier=1.1),
    Category.COMPUTERS: CategoryPolicy(sensitive=True, tax_multiplier=1.2, shipping_multiplier=1.1),
    Category.HOME: CategoryPolicy(safe=True, tax_multiplier=0.9, shipping_multiplier=1.3),
    Category.KITCHEN: CategoryPolicy(safe=True, tax_multiplier=0.9, shipping_multiplier=1.3),
    Category.GARDEN: CategoryPolicy(safe=True, shipping_multiplier=1.3),
    Category.DECOR: CategoryPolicy(safe=True),
    Category.TOYS: CategoryPolicy(safe=True),
    Category.SPORTS: CategoryPolicy(safe=True),
    Category.CLOTHING: CategoryPolicy(safe=True),
    Category.BEAUTY: CategoryPolicy(tax_multiplier=1.1, shipping_multiplier=0.9),
    Category.OTHER: CategoryPolicy(),
}

# Accent-free, lowercase aliases. Sensitive categories come first so that a
# mixed label like "casa inteligente eletronicos" resolves to the stricter one.
_ALIASES: dict[Category, tuple[str, ...]] = {
    Category.ELECTRONICS: (
        "electronics", "electronic", "eletronicos", "eletronico", "tecnologia",
        "tech", "gadgets", "smart_home", "led_lighting",
    ),
    Category.PHONES: (
        "phones", "phone", "celulares", "celular", "smartphones", "smartphone",
        "telefones", "phone_accessories",
    ),
    Category.COMPUTERS: (
        "computers", "computer", "computadores", "computador", "informatica",
        "laptops", "notebooks",
    ),
    Category.KITCHEN: ("kitchen", "cozinha"),
    Category.GARDEN: ("garden", "jardim", "jardinagem", "outdoor"),
    Category.DECOR: ("decor", "decoracao", "decoration"),
    Category.HOME: ("home", "casa", "lar", "household"),
    Category.TOYS: ("toys", "toy", "brinquedos", "brinquedo", "kids", "infantil"),
    Category.SPORTS: ("sports", "sport", "esportes", "esporte", "fitness"),
    Category.CLOTHING: ("clothing", "roupas", "roupa", "moda", "fashion", "vestuario"),
    Category.BEAUTY: (
        "beauty", "beleza", "cosmeticos", "beauty_devices", "cuidados pessoais",
    ),
}

_LOOKUP: dict[str, Category] = {
    alias: category for category, aliases in _ALIASES.items() for alias in aliases
}


def _fold(text: str) -> str:
    """Lowercase and strip accents."""
    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_category(raw: str | Category | None) -> Category:
    """Map a collector's category label onto the canonical enum.

    Exact alias match first, then the first alias found as a word inside the
    label. Unknown labels map to `Category.OTHER`.

    Example:
        >>> normalize_category("Eletrônicos")
        <Category.ELECTRONICS: 'electronics'>
        >>> normalize_category("Casa e Cozinha")
        <Category.KITCHEN: 'kitchen'>
    """
    if isinstance(raw, Category):
        return raw
    if not raw:
        return Category.OTHER

    folded = _fold(raw)
    if folded in _LOOKUP:
        return _LOOKUP[folded]
    try:
        return Category(folded)
    except ValueError:
        pass

    words = set(re.split(r"[\s/&,>|-]+", folded))
    for category, aliases in _ALIASES.items():
        if any(alias in words or (" " in alias and alias in folded) for alias in aliases):
            return category
    return Category.OTHER


def policy_for(category: Category, policies: dict[Category, CategoryPolicy] | None = None) -> CategoryPolicy:
    table = policies if policies is not None else CATEGORY_POLICIES
    return table.get(category, CATEGORY_POLICIES[Category.OTHER])
