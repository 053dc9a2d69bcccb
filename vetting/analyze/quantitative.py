"""Quantitative filter: scores sales, reviews, rating and orders against category thresholds."""

from __future__ import annotations

import math

from loguru import logger

from vetting.categories import normalize_category
from vetting.config import VettingConfig
from vetting.models import CandidateProduct, FilterVerdict


def _normalize(value: float, threshold: float) -> float:
    """Scale a metric so that meeting the threshold is 100, capped at 100."""
    if threshold <= 0:
        return 100.0
    return max(0.0, min(100.0, value / threshold * 100))


def _clean(value, name: str, notes: list[str]) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        notes.append(f"{name} unreadable, scored as 0")
        return 0.0
    if not math.isfinite(number) or number < 0:
        notes.append(f"{name} invalid ({value}), scored as 0")
        return 0.0
    return number


def evaluate_quantitative(candidate: CandidateProduct, config: VettingConfig) -> FilterVerdict:
    """Score listing metrics against the category's threshold table.

    Approved when every hard threshold is met, or when the weighted score
    reaches the soft threshold even with a threshold missed.

    Returns:
        FilterVerdict with per-criterion booleans, per-metric scores (0-100),
        the weighted score and a reason tag.
    """
    settings = config.quantitative
    category = normalize_category(candidate.category)
    profile = settings.profile_for(category)
    th, w = profile.thresholds, profile.weights

    notes: list[str] = []
    sales = _clean(candidate.sales, "sales", notes)
    reviews = _clean(candidate.reviews, "reviews", notes)
    rating = _clean(candidate.rating, "rating", notes)
    orders = _clean(candidate.orders, "orders", notes)

    criteria = {
        "sales": sales >= th.min_sales,
        "reviews": reviews >= th.min_reviews,
        "rating": rating >= th.min_rating,
        "orders": orders >= th.min_orders,
    }
    metric_scores = {
        "sales": _normalize(sales, th.min_sales),
        "reviews": _normalize(reviews, th.min_reviews),
        "rating": _normalize(rating, th.min_rating),
        "orders": _normalize(orders, th.min_orders),
    }

    weights = {"sales": w.sales, "reviews": w.reviews, "rating": w.rating, "orders": w.orders}
    total_weight = sum(weights.values()) or 1.0
    score = sum(metric_scores[k] * weights[k] for k in weights) / total_weight
    score = round(max(0.0, min(100.0, score)), 2)

    all_met = all(criteria.values())
    if all_met:
        approved, reason = True, "all_thresholds_met"
    elif score >= settings.soft_threshold:
        approved, reason = True, "score_compensates"
    else:
        approved, reason = False, "below_thresholds"

    missed = [k for k, ok in criteria.items() if not ok]
    rationale = f"score {score:.1f} ({category.value} thresholds)"
    if missed:
        rationale += f"; below threshold: {', '.join(missed)}"
    if notes:
        rationale += "; " + "; ".join(notes)

    logger.debug("Quantitative {}: score={} approved={} ({})", candidate.id, score, approved, reason)

    return FilterVerdict(
        criteria=criteria,
        metric_scores={k: round(v, 2) for k, v in metric_scores.items()},
        score=score,
        approved=approved,
        reason=reason,
        rationale=rationale,
        source="quantitative",
        details={"category": category.value, "thresholds": th.model_dump()},
    )
