"""Qualitative filter: judges listing text and seller quality.

An injected external scorer (e.g. `ai_analysis.ClaudeQualitativeScorer`) is
used when available. When it is missing, raises, or returns something
unusable, the keyword heuristic below produces a comparable 0-100 score.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from loguru import logger

from vetting.analyze.keywords import normalize_title
from vetting.categories import normalize_category, policy_for
from vetting.config import VettingConfig
from vetting.models import CandidateProduct, FilterVerdict


class QualitativeScorer(Protocol):
    async def score(self, candidate: CandidateProduct) -> dict[str, Any]:
        """Return {"score": 0-100, "approved": bool, "rationale": str}."""
        ...


def _contains(text: str, keywords: tuple[str, ...]) -> list[str]:
    padded = f" {text} "
    return [kw for kw in keywords if f" {normalize_title(kw)} " in padded]


def seller_notes(candidate: CandidateProduct, config: VettingConfig) -> list[str]:
    """Warnings about the supplier's track record."""
    settings = config.qualitative
    notes = []
    seller = candidate.seller
    if seller.positive_rate is not None and seller.positive_rate < settings.seller_min_positive_rate:
        notes.append(f"seller positive rate {seller.positive_rate:.0%} below {settings.seller_min_positive_rate:.0%}")
    if seller.store_age_months is not None and seller.store_age_months < settings.seller_min_store_age_months:
        notes.append(f"store open only {seller.store_age_months} months")
    return notes


def heuristic_score(candidate: CandidateProduct, config: VettingConfig) -> FilterVerdict:
    """Keyword heuristic: rating/sales boosts, title keywords, category bonus."""
    settings = config.qualitative
    category = normalize_category(candidate.category)
    policy = policy_for(category, config.categories)
    title = normalize_title(candidate.search_title)

    score = 0.0
    parts = []

    if candidate.rating >= settings.rating_boost_min:
        score += 30
        parts.append(f"rating {candidate.rating} (+30)")
    if candidate.reviews >= settings.reviews_boost_min:
        score += 20
        parts.append(f"{candidate.reviews} reviews (+20)")

    positives = _contains(title, settings.positive_keywords)
    negatives = _contains(title, settings.negative_keywords)
    if negatives:
        score -= 10
        parts.append(f"negative terms {negatives} (-10)")
    elif positives:
        score += 20
        parts.append(f"positive terms {positives} (+20)")
    else:
        score += 10
        parts.append("neutral title (+10)")

    if policy.safe:
        score += 15
        parts.append(f"low-risk category {category.value} (+15)")
    else:
        score += 5
        parts.append(f"category {category.value} (+5)")

    score = max(0.0, min(100.0, score))
    approved = score >= settings.min_score
    risks = seller_notes(candidate, config)
    if negatives:
        risks.append("title suggests quality problems")
    if policy.sensitive:
        risks.append("sensitive category")

    return FilterVerdict(
        criteria={
            "solves_problem": bool(positives),
            "unique_proposition": bool(positives) and not negatives,
            "reliable_supplier": not seller_notes(candidate, config),
            "market_potential": candidate.rating >= settings.rating_boost_min
            and candidate.reviews >= settings.reviews_boost_min,
        },
        score=score,
        approved=approved,
        reason="heuristic_approved" if approved else "heuristic_rejected",
        rationale="; ".join(parts),
        source="heuristic",
        details={"risks": risks, "positive_terms": positives, "negative_terms": negatives},
    )


def _from_external(result: Any, candidate: CandidateProduct, config: VettingConfig) -> FilterVerdict:
    if not isinstance(result, dict) or "score" not in result:
        raise ValueError(f"malformed scorer result: {result!r}")
    score = float(result["score"])
    if score != score:  # NaN
        raise ValueError("scorer returned NaN")
    score = max(0.0, min(100.0, score))
    approved = result.get("approved")
    if not isinstance(approved, bool):
        approved = score >= config.qualitative.min_score
    return FilterVerdict(
        criteria={"external_approved": approved},
        score=score,
        approved=approved,
        reason="external_approved" if approved else "external_rejected",
        rationale=str(result.get("rationale", "")),
        source="external-scorer",
        details={"risks": seller_notes(candidate, config)},
    )


class QualitativeFilter:
    """Runs the external scorer when present, otherwise the heuristic."""

    def __init__(self, config: VettingConfig, scorer: Optional[QualitativeScorer] = None):
        self.config = config
        self.scorer = scorer

    async def evaluate(self, candidate: CandidateProduct) -> FilterVerdict:
        if self.scorer is not None:
            try:
                result = await self.scorer.score(candidate)
                return _from_external(result, candidate, self.config)
            except Exception as e:
                logger.warning("External qualitative scorer failed for {}: {}", candidate.id, e)

        try:
            return heuristic_score(candidate, self.config)
        except Exception as e:
            logger.error("Qualitative heuristic failed for {}: {}", candidate.id, e)
            return FilterVerdict(
                score=0.0,
                approved=None,
                reason="qualitative_unavailable",
                rationale=f"qualitative scoring unavailable: {e}",
                source="heuristic",
            )
