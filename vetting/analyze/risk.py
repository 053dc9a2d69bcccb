"""Risk scoring: an additive point model over a declarative rule list.

Every rule is a `RiskRule(label, points, condition)`; the score is the sum of
the points of all rules whose condition holds, capped at 100.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from vetting.categories import Category, normalize_category, policy_for
from vetting.config import RiskSettings, VettingConfig
from vetting.models import (
    CandidateProduct,
    MarginAnalysis,
    MatchMethod,
    MatchResult,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
)


@dataclass(frozen=True)
class RiskInputs:
    """Everything the rules look at, already extracted from the stage results."""

    category: Category
    sensitive: bool
    method: MatchMethod
    image_error: bool = False
    similarity_score: Optional[float] = None   # title score of the match (or best listing)
    semantic_score: Optional[float] = None
    fallback_used: bool = False
    price_deviation: Optional[float] = None
    max_price_deviation: float = 250.0
    realistic_margin: Optional[float] = None
    realistic_roi: Optional[float] = None
    product_score: Optional[float] = None


@dataclass(frozen=True)
class RiskRule:
    label: str
    points: int
    condition: Callable[[RiskInputs, RiskSettings], bool]


def _abs_deviation(i: RiskInputs) -> Optional[float]:
    return abs(i.price_deviation) if i.price_deviation is not None else None


RISK_RULES: tuple[RiskRule, ...] = (
    RiskRule(
        "no qualifying image match", 40,
        lambda i, s: i.method != MatchMethod.IMAGE,
    ),
    RiskRule(
        "low title similarity", 30,
        lambda i, s: i.method != MatchMethod.IMAGE
        and (i.similarity_score is None or i.similarity_score < s.low_text_score),
    ),
    RiskRule(
        "moderate title similarity", 15,
        lambda i, s: i.method != MatchMethod.IMAGE
        and i.similarity_score is not None
        and s.low_text_score <= i.similarity_score < s.moderate_text_score,
    ),
    RiskRule(
        "price deviation beyond cap", 20,
        lambda i, s: _abs_deviation(i) is not None and _abs_deviation(i) > i.max_price_deviation,
    ),
    RiskRule(
        "high price deviation", 10,
        lambda i, s: _abs_deviation(i) is not None
        and s.moderate_deviation < _abs_deviation(i) <= i.max_price_deviation,
    ),
    RiskRule(
        "low absolute margin", 10,
        lambda i, s: i.realistic_margin is not None and i.realistic_margin < s.min_margin_amount,
    ),
    RiskRule(
        "sensitive category", 10,
        lambda i, s: i.sensitive,
    ),
    RiskRule(
        "image fetch error", 15,
        lambda i, s: i.image_error,
    ),
    RiskRule(
        "low product score", 15,
        lambda i, s: i.product_score is not None and i.product_score < s.low_product_score,
    ),
    RiskRule(
        "low-confidence match method", 10,
        lambda i, s: i.fallback_used,
    ),
)


def classify(score: float, settings: RiskSettings) -> RiskLevel:
    if score >= settings.high_level:
        return RiskLevel.HIGH
    if score >= settings.medium_level:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def review_reasons(inputs: RiskInputs, score: float, settings: RiskSettings) -> list[str]:
    reasons = []
    if score >= settings.review_threshold:
        reasons.append(f"risk score {score:.0f} >= {settings.review_threshold:.0f}")
    if inputs.fallback_used and (inputs.semantic_score or 0.0) < settings.review_semantic_score:
        reasons.append("fallback match with weak semantic score")
    if inputs.price_deviation is not None and abs(inputs.price_deviation) > settings.suspicious_deviation:
        reasons.append(f"suspicious price deviation {inputs.price_deviation:.0f}%")
    if inputs.realistic_roi is not None and inputs.realistic_roi > settings.suspicious_roi:
        reasons.append(f"suspicious margin (ROI {inputs.realistic_roi:.0f}%)")
    return reasons


def assess_risk(
    inputs: RiskInputs,
    settings: RiskSettings,
    rules: tuple[RiskRule, ...] = RISK_RULES,
) -> RiskAssessment:
    """Apply the rules in order. Pure: same inputs, same assessment."""
    factors = [RiskFactor(label=r.label, points=r.points) for r in rules if r.condition(inputs, settings)]
    score = float(min(100, sum(f.points for f in factors)))
    level = classify(score, settings)
    reasons = review_reasons(inputs, score, settings)

    if level == RiskLevel.HIGH:
        recommendation = "reject"
    elif reasons:
        recommendation = "manual_review"
    else:
        recommendation = "auto_approve"

    return RiskAssessment(
        score=score,
        level=level,
        factors=factors,
        review_required=bool(reasons),
        review_reasons=reasons,
        recommendation=recommendation,
    )


def build_risk_inputs(
    candidate: CandidateProduct,
    match: MatchResult,
    margin: Optional[MarginAnalysis],
    product_score: Optional[float],
    config: VettingConfig,
) -> RiskInputs:
    """Extract rule inputs from the matcher and margin results."""
    category = normalize_category(candidate.category)
    reference = match.best or (match.top_matches[0] if match.top_matches else None)

    similarity = None
    semantic = None
    deviation = None
    if reference is not None:
        semantic = reference.semantic_score
        if match.method == MatchMethod.TEXTUAL_FALLBACK:
            similarity = reference.text_score
        else:
            similarity = reference.semantic_score if reference.semantic_score is not None else reference.text_score
        deviation = reference.price_deviation_pct

    realistic = margin.realistic if margin is not None else None
    fallback_used = match.method == MatchMethod.TEXTUAL_FALLBACK or (
        match.method == MatchMethod.SEMANTIC and match.semantic_fallback
    )

    return RiskInputs(
        category=category,
        sensitive=policy_for(category, config.categories).sensitive,
        method=match.method,
        image_error=match.image_error,
        similarity_score=similarity,
        semantic_score=semantic,
        fallback_used=fallback_used,
        price_deviation=deviation,
        max_price_deviation=config.matching.max_price_deviation,
        realistic_margin=realistic.margin if realistic is not None else None,
        realistic_roi=realistic.roi if realistic is not None else None,
        product_score=product_score,
    )


def score_risk(
    candidate: CandidateProduct,
    match: MatchResult,
    margin: Optional[MarginAnalysis],
    product_score: Optional[float],
    config: VettingConfig,
) -> RiskAssessment:
    assessment = assess_risk(build_risk_inputs(candidate, match, margin, product_score, config), config.risk)
    logger.debug(
        "Risk {}: {} ({}) factors={}",
        candidate.id, assessment.score, assessment.level.value, [f.label for f in assessment.factors],
    )
    return assessment
