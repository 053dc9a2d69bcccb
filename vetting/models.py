"""Data models for the vetting pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vetting.parsing import parse_count, parse_price, parse_rating


class SellerInfo(BaseModel):
    """Seller metadata from the primary marketplace."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    positive_rate: Optional[float] = None  # 0..1
    store_age_months: Optional[int] = None

    @field_validator("positive_rate", mode="before")
    @classmethod
    def _rate(cls, v):
        if v is None or v == "":
            return None
        rate = parse_price(v)
        return rate / 100 if rate > 1 else rate


class CandidateProduct(BaseModel):
    """Product as delivered by a collector. Never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    title_translated: str = ""
    category: str = ""
    price: float = 0.0
    currency: str = "USD"
    seller: SellerInfo = Field(default_factory=SellerInfo)
    sales: int = 0
    reviews: int = 0
    rating: float = 0.0
    orders: int = 0
    image_urls: tuple[str, ...] = ()
    source_url: str = ""
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return str(v)

    @field_validator("sales", "reviews", "orders", mode="before")
    @classmethod
    def _counts(cls, v):
        return parse_count(v)

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v):
        return parse_price(v)

    @field_validator("rating", mode="before")
    @classmethod
    def _rating(cls, v):
        return parse_rating(v)

    @field_validator("image_urls", mode="before")
    @classmethod
    def _images(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,) if v else ()
        return tuple(u for u in v if u)

    @property
    def search_title(self) -> str:
        return self.title_translated or self.title


class MatchCandidate(BaseModel):
    """Listing found on the secondary marketplace, plus the scores it earned."""

    title: str
    price: float = 0.0  # local currency (BRL)
    image_urls: list[str] = Field(default_factory=list)
    url: str = ""
    listing_id: str = ""
    image_similarity: Optional[float] = None
    semantic_score: Optional[float] = None
    text_score: Optional[float] = None
    price_deviation_pct: Optional[float] = None

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v):
        return parse_price(v)


class PriceStatistics(BaseModel):
    count: int = 0
    min: float = 0.0
    p25: float = 0.0
    median: float = 0.0
    p75: float = 0.0
    max: float = 0.0
    mean: float = 0.0


class CostBreakdown(BaseModel):
    purchase_cost: float
    shipping: float
    import_tax: float
    landed_cost: float
    marketplace_fee: float
    total_cost: float


class MarginScenario(BaseModel):
    name: str
    sale_price: float = 0.0
    costs: Optional[CostBreakdown] = None
    margin: float = 0.0
    margin_pct: float = 0.0
    gross_margin: float = 0.0      # before marketplace fee
    gross_margin_pct: float = 0.0
    roi: float = 0.0
    viable: bool = False
    classification: str = ""
    gross_classification: str = ""  # band of the pre-fee margin
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MarginConsensus(BaseModel):
    successful: int = 0
    reliability: float = 0.0
    average_margin_pct: float = 0.0
    recommendation: str = ""


class MarginAnalysis(BaseModel):
    scenarios: dict[str, MarginScenario] = Field(default_factory=dict)
    consensus: MarginConsensus = Field(default_factory=MarginConsensus)
    viability_score: float = 0.0
    risks: list[str] = Field(default_factory=list)
    payback_units: Optional[int] = None
    viable: bool = False
    failures: dict[str, str] = Field(default_factory=dict)

    @property
    def realistic(self) -> Optional[MarginScenario]:
        scenario = self.scenarios.get("realistic")
        return scenario if scenario is not None and scenario.ok else None


class RiskFactor(BaseModel):
    label: str
    points: int


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskAssessment(BaseModel):
    score: float = 0.0
    level: RiskLevel = RiskLevel.LOW
    factors: list[RiskFactor] = Field(default_factory=list)
    review_required: bool = False
    review_reasons: list[str] = Field(default_factory=list)
    recommendation: str = ""


class FilterVerdict(BaseModel):
    """Outcome of the quantitative or qualitative filter."""

    criteria: dict[str, bool] = Field(default_factory=dict)
    metric_scores: dict[str, float] = Field(default_factory=dict)
    score: float = 0.0
    approved: Optional[bool] = None  # None = neutral (no opinion)
    reason: str = ""
    rationale: str = ""
    source: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class MatchMethod(str, Enum):
    IMAGE = "image"
    SEMANTIC = "semantic"
    TEXTUAL_FALLBACK = "textual_fallback"
    NONE = "none"


class MatchResult(BaseModel):
    best: Optional[MatchCandidate] = None
    method: MatchMethod = MatchMethod.NONE
    top_matches: list[MatchCandidate] = Field(default_factory=list)
    comparables: list[MatchCandidate] = Field(default_factory=list)  # listings that passed the winning step
    visual_risk: bool = True
    image_error: bool = False
    semantic_fallback: bool = False  # semantic step scored with keywords, not a model
    query: str = ""
    attempted: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.best is not None


class StageStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageOutcome:
    """Typed result of one pipeline stage."""

    stage: str
    status: StageStatus
    value: Any = None
    error: Optional[str] = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def usable(self) -> bool:
        return self.status in (StageStatus.SUCCESS, StageStatus.DEGRADED)


class Decision(BaseModel):
    """Final verdict for one candidate."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    title: str = ""
    category: str = ""
    final_score: float = 0.0
    tier: str = "error"
    approved: bool = False
    component_scores: dict[str, float] = Field(default_factory=dict)
    weights: dict[str, float] = Field(default_factory=dict)
    criteria: dict[str, bool] = Field(default_factory=dict)
    criteria_met: int = 0
    rationale: str = ""
    recommendation: str = ""
    quantitative: Optional[FilterVerdict] = None
    qualitative: Optional[FilterVerdict] = None
    match: Optional[MatchResult] = None
    margin: Optional[MarginAnalysis] = None
    risk: Optional[RiskAssessment] = None
    stages: dict[str, StageStatus] = Field(default_factory=dict)
    roi: Optional[float] = None
    source_price: float = 0.0
    error: Optional[str] = None
    error_details: dict[str, Any] = Field(default_factory=dict)
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
