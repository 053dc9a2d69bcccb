"""Vetting configuration: loads secrets from .env and builds the settings value.

Secrets and paths stay module-level constants. Every tunable the engine reads
lives in `VettingConfig`, a frozen value passed into each pipeline call.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from vetting.categories import CATEGORY_POLICIES, Category, CategoryPolicy

# Project root
ROOT_DIR = Path(__file__).parent.parent
DATA_DIR = ROOT_DIR / "data"

# Load .env
load_dotenv(ROOT_DIR / ".env")

# Claude API (optional semantic / qualitative scorers)
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")

# Secondary marketplace
MERCADOLIVRE_API_URL = os.getenv("MERCADOLIVRE_API_URL", "https://api.mercadolibre.com")
MERCADOLIVRE_SITE_ID = os.getenv("MERCADOLIVRE_SITE_ID", "MLB")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)


class _Settings(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Quantitative filter ---

class MetricThresholds(_Settings):
    min_sales: int = 500
    min_reviews: int = 50
    min_rating: float = 4.5
    min_orders: int = 100


class MetricWeights(_Settings):
    sales: float = 0.35
    reviews: float = 0.25
    rating: float = 0.25
    orders: float = 0.15


class QuantitativeProfile(_Settings):
    thresholds: MetricThresholds = Field(default_factory=MetricThresholds)
    weights: MetricWeights = Field(default_factory=MetricWeights)


def _default_profiles() -> dict[Category, QuantitativeProfile]:
    strict = QuantitativeProfile(
        thresholds=MetricThresholds(min_sales=1000, min_reviews=100, min_rating=4.6, min_orders=200),
        weights=MetricWeights(sales=0.30, reviews=0.30, rating=0.30, orders=0.10),
    )
    relaxed = QuantitativeProfile(
        thresholds=MetricThresholds(min_sales=300, min_reviews=30, min_rating=4.4, min_orders=80),
    )
    return {
        Category.ELECTRONICS: strict,
        Category.PHONES: strict,
        Category.COMPUTERS: strict,
        Category.HOME: relaxed,
        Category.KITCHEN: relaxed,
        Category.GARDEN: relaxed,
        Category.DECOR: relaxed,
        Category.TOYS: QuantitativeProfile(
            thresholds=MetricThresholds(min_sales=300, min_reviews=30, min_rating=4.3, min_orders=80),
        ),
        Category.CLOTHING: QuantitativeProfile(
            thresholds=MetricThresholds(min_sales=400, min_reviews=40, min_rating=4.3, min_orders=100),
        ),
        Category.BEAUTY: QuantitativeProfile(
            thresholds=MetricThresholds(min_sales=500, min_reviews=80, min_rating=4.6, min_orders=100),
            weights=MetricWeights(sales=0.25, reviews=0.30, rating=0.35, orders=0.10),
        ),
    }


class QuantitativeSettings(_Settings):
    soft_threshold: float = 70.0
    profiles: dict[Category, QuantitativeProfile] = Field(default_factory=_default_profiles)
    default: QuantitativeProfile = Field(default_factory=QuantitativeProfile)

    def profile_for(self, category: Category) -> QuantitativeProfile:
        return self.profiles.get(category, self.default)


# --- Qualitative filter ---

class QualitativeSettings(_Settings):
    min_score: float = 50.0
    rating_boost_min: float = 4.3
    reviews_boost_min: int = 100
    positive_keywords: tuple[str, ...] = (
        "premium", "professional", "smart", "wireless", "bluetooth", "stainless",
        "waterproof", "durable", "portable", "rechargeable", "led", "rgb",
        "gaming", "fitness", "outdoor", "kitchen",
        "profissional", "inteligente", "sem fio", "inox", "prova d'agua",
        "portatil", "recarregavel", "cozinha",
    )
    negative_keywords: tuple[str, ...] = (
        "cheap", "fake", "copy", "imitation", "broken", "used", "defective",
        "damaged", "low quality", "counterfeit",
        "replica", "usado", "defeito", "quebrado", "falsificado",
    )
    seller_min_positive_rate: float = 0.90
    seller_min_store_age_months: int = 6


# --- Costs and margin ---

class CostSettings(_Settings):
    fx_rate: float = 5.20            # USD -> BRL
    import_tax: float = 0.12
    shipping_base: float = 12.0      # local currency per unit
    marketplace_fee: float = 0.10
    min_margin_pct: float = 15.0
    payback_cap: int = 60


# --- Matching ---

class MatchingSettings(_Settings):
    image_threshold: float = 80.0
    semantic_threshold: float = 70.0
    textual_threshold: float = 60.0
    max_price_deviation: float = 250.0   # percent above/below the converted source price
    listings_to_examine: int = 5
    top_matches: int = 3
    textual_allow: frozenset[Category] = frozenset({
        Category.HOME, Category.GARDEN, Category.KITCHEN, Category.DECOR,
        Category.TOYS, Category.SPORTS, Category.CLOTHING,
    })
    textual_deny: frozenset[Category] = frozenset({
        Category.ELECTRONICS, Category.PHONES, Category.COMPUTERS,
    })

    def allows_textual_fallback(self, category: Category) -> bool:
        return category not in self.textual_deny and category in self.textual_allow


# --- Risk ---

class RiskSettings(_Settings):
    low_text_score: float = 60.0
    moderate_text_score: float = 75.0
    moderate_deviation: float = 150.0
    suspicious_deviation: float = 300.0
    suspicious_roi: float = 1000.0
    min_margin_amount: float = 10.0      # BRL, realistic scenario
    low_product_score: float = 50.0
    review_threshold: float = 50.0
    review_semantic_score: float = 70.0
    medium_level: float = 40.0
    high_level: float = 70.0


# --- Decision ---

class DecisionSettings(_Settings):
    quantitative_weight: float = 0.30
    qualitative_weight: float = 0.30
    margin_weight: float = 0.40
    min_score: float = 70.0
    min_criteria: int = 3
    qualitative_gate: float = 60.0       # quant score that still lets qualitative run


# --- Runtime ---

class BatchSettings(_Settings):
    max_concurrent: int = 3
    start_delay: float = 0.5           # pause before a worker takes its next candidate
    per_candidate_timeout: float = 120.0
    deadline: Optional[float] = None     # seconds for the whole batch


class HttpSettings(_Settings):
    timeout: float = 15.0
    max_retries: int = 3
    base_delay: float = 1.0
    user_agent: str = USER_AGENT


class VettingConfig(_Settings):
    """Everything the engine needs to evaluate a candidate."""

    quantitative: QuantitativeSettings = Field(default_factory=QuantitativeSettings)
    qualitative: QualitativeSettings = Field(default_factory=QualitativeSettings)
    costs: CostSettings = Field(default_factory=CostSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    decision: DecisionSettings = Field(default_factory=DecisionSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    categories: dict[Category, CategoryPolicy] = Field(default_factory=lambda: dict(CATEGORY_POLICIES))
    use_images: bool = True
    force_all_stages: bool = False

    def with_overrides(self, **sections) -> "VettingConfig":
        """Return a copy with whole sections or nested fields replaced.

        Example:
            >>> cfg.with_overrides(costs={"fx_rate": 5.5}, force_all_stages=True)
        """
        update = {}
        for name, value in sections.items():
            current = getattr(self, name)
            if isinstance(value, dict) and isinstance(current, BaseModel):
                value = current.model_copy(update=value)
            update[name] = value
        return self.model_copy(update=update)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def load_config() -> VettingConfig:
    """Build the config value from defaults plus VETTING_* environment overrides."""
    costs = CostSettings()
    matching = MatchingSettings()
    batch = BatchSettings()
    http = HttpSettings()

    return VettingConfig(
        costs=CostSettings(
            fx_rate=_env_float("VETTING_FX_RATE", costs.fx_rate),
            import_tax=_env_float("VETTING_IMPORT_TAX", costs.import_tax),
            shipping_base=_env_float("VETTING_SHIPPING_BASE", costs.shipping_base),
            marketplace_fee=_env_float("VETTING_MARKETPLACE_FEE", costs.marketplace_fee),
            min_margin_pct=_env_float("VETTING_MIN_MARGIN_PCT", costs.min_margin_pct),
        ),
        matching=matching.model_copy(update={
            "max_price_deviation": _env_float("VETTING_MAX_PRICE_DEVIATION", matching.max_price_deviation),
        }),
        batch=BatchSettings(
            max_concurrent=_env_int("VETTING_MAX_CONCURRENT", batch.max_concurrent),
            start_delay=_env_float("VETTING_BATCH_DELAY", batch.start_delay),
        ),
        http=HttpSettings(
            timeout=_env_float("VETTING_HTTP_TIMEOUT", http.timeout),
        ),
        use_images=os.getenv("VETTING_USE_IMAGES", "true").lower() in ("true", "1", "yes"),
    )
