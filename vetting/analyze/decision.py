"""Decision aggregation: weighted final score, tier, approval and ranking.

Approval rule: the weighted score must reach `min_score` AND at least
`min_criteria` of the four criteria must hold:

    quantitative approved | qualitative not rejected | margin viable | score sufficient
"""

from __future__ import annotations

from typing import Optional, Union

from vetting.config import DecisionSettings, VettingConfig
from vetting.errors import VettingError
from vetting.models import (
    CandidateProduct,
    Decision,
    FilterVerdict,
    MarginAnalysis,
    MatchResult,
    RiskAssessment,
    StageStatus,
)

TIER_BANDS: tuple[tuple[float, str], ...] = (
    (90.0, "diamond"),
    (80.0, "platinum"),
    (70.0, "gold"),
    (60.0, "silver"),
    (50.0, "bronze"),
)
TIER_INADEQUATE = "inadequate"
TIER_ERROR = "error"


def tier_for(score: float) -> str:
    for floor, name in TIER_BANDS:
        if score >= floor:
            return name
    return TIER_INADEQUATE


def weights_of(settings: DecisionSettings) -> dict[str, float]:
    return {
        "quantitative": settings.quantitative_weight,
        "qualitative": settings.qualitative_weight,
        "margin": settings.margin_weight,
    }


def weighted_score(components: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean of the component scores, rounded to 2 decimals."""
    total = sum(weights.values())
    if total <= 0:
        return 0.0
    score = sum(components.get(k, 0.0) * w for k, w in weights.items()) / total
    return round(max(0.0, min(100.0, score)), 2)


def _rationale(criteria: dict[str, bool], components: dict[str, float], approved: bool,
               met: int, settings: DecisionSettings, final: float) -> str:
    labels = {
        "quantitative": f"quantitative filter (score {components['quantitative']:.1f})",
        "qualitative": f"qualitative filter (score {components['qualitative']:.1f})",
        "margin": f"margin viability (score {components['margin']:.1f})",
        "score": f"final score {final:.1f} vs minimum {settings.min_score:.0f}",
    }
    parts = [f"{'PASS' if ok else 'FAIL'} {labels[name]}" for name, ok in criteria.items()]
    verdict = "approved" if approved else "rejected"
    return f"{verdict}: {met}/{len(criteria)} criteria met; " + "; ".join(parts)


def _rejection_reason(criteria: dict[str, bool], met: int, settings: DecisionSettings) -> str:
    if not criteria["quantitative"]:
        return "quantitative filter failed"
    if not criteria["margin"]:
        return "margin not viable"
    if not criteria["score"]:
        return "final score below minimum"
    if met < settings.min_criteria:
        return "too few criteria met"
    return "qualitative filter rejected"


def recommend(approved: bool, final: float, realistic_margin_pct: Optional[float],
              risk: Optional[RiskAssessment] = None) -> str:
    if not approved:
        return "reject: score too low" if final < 50 else "reject: criteria not met"
    if risk is not None and risk.review_required:
        return "manual_review"
    if realistic_margin_pct is None:
        return "needs_analysis"
    if final >= 85 and realistic_margin_pct >= 30:
        return "approve_immediately"
    if final >= 75 and realistic_margin_pct >= 20:
        return "recommended"
    if final >= 70 and realistic_margin_pct >= 15:
        return "conditional"
    return "restricted"


def aggregate_decision(
    candidate: CandidateProduct,
    quantitative: FilterVerdict,
    qualitative: Optional[FilterVerdict],
    margin: Optional[MarginAnalysis],
    config: VettingConfig,
    match: Optional[MatchResult] = None,
    risk: Optional[RiskAssessment] = None,
    stages: Optional[dict[str, StageStatus]] = None,
) -> Decision:
    """Combine the stage results into the final Decision.

    A skipped qualitative stage counts as "not rejected" with score 0; a
    skipped margin stage counts as not viable with score 0.
    """
    settings = config.decision
    weights = weights_of(settings)
    components = {
        "quantitative": round(quantitative.score, 2),
        "qualitative": round(qualitative.score, 2) if qualitative is not None else 0.0,
        "margin": round(margin.viability_score, 2) if margin is not None else 0.0,
    }
    final = weighted_score(components, weights)

    criteria = {
        "quantitative": bool(quantitative.approved),
        "qualitative": qualitative is None or qualitative.approved is not False,
        "margin": bool(margin is not None and margin.viable),
        "score": final >= settings.min_score,
    }
    met = sum(criteria.values())
    approved = criteria["score"] and met >= settings.min_criteria

    realistic = margin.realistic if margin is not None else None
    rationale = _rationale(criteria, components, approved, met, settings, final)
    if not approved:
        rationale = f"{_rejection_reason(criteria, met, settings)}. {rationale}"

    return Decision(
        candidate_id=candidate.id,
        title=candidate.title,
        category=candidate.category,
        final_score=final,
        tier=tier_for(final),
        approved=approved,
        component_scores=components,
        weights=weights,
        criteria=criteria,
        criteria_met=met,
        rationale=rationale,
        recommendation=recommend(approved, final, realistic.margin_pct if realistic else None, risk),
        quantitative=quantitative,
        qualitative=qualitative,
        match=match,
        margin=margin,
        risk=risk,
        stages=stages or {},
        roi=realistic.roi if realistic else None,
        source_price=candidate.price,
    )


def decision_from_error(
    candidate: Union[CandidateProduct, str],
    error: Union[Exception, str],
    stages: Optional[dict[str, StageStatus]] = None,
    config: Optional[VettingConfig] = None,
) -> Decision:
    """Structurally valid rejection for a candidate whose evaluation failed."""
    weights = weights_of(config.decision) if config is not None else {}
    if isinstance(candidate, CandidateProduct):
        ident, title, category, price = candidate.id, candidate.title, candidate.category, candidate.price
    else:
        ident, title, category, price = str(candidate), "", "", 0.0
    message = str(error) or type(error).__name__
    if isinstance(error, VettingError):
        details = error.to_dict()
    else:
        kind = type(error).__name__ if isinstance(error, Exception) else "EVALUATION_ERROR"
        details = {"error": kind, "message": message}
    return Decision(
        candidate_id=ident,
        title=title,
        category=category,
        final_score=0.0,
        tier=TIER_ERROR,
        approved=False,
        component_scores={"quantitative": 0.0, "qualitative": 0.0, "margin": 0.0},
        weights=weights,
        rationale=f"evaluation failed: {message}",
        recommendation="reject: evaluation error",
        stages=stages or {},
        source_price=price,
        error=message,
        error_details=details,
    )


def rank_decisions(decisions: list[Decision]) -> list[Decision]:
    """Highest final score first, ties broken by higher ROI."""
    return sorted(
        decisions,
        key=lambda d: (d.final_score, d.roi if d.roi is not None else float("-inf")),
        reverse=True,
    )
