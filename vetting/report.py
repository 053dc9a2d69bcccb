"""Batch summary of vetting decisions."""

from __future__ import annotations

from collections import Counter
from statistics import mean
from typing import Any, Optional

from vetting.analyze.decision import TIER_ERROR, rank_decisions
from vetting.categories import normalize_category
from vetting.models import Decision

PRICE_BANDS: tuple[tuple[float, str], ...] = (
    (5.0, "under $5"),
    (15.0, "$5-15"),
    (30.0, "$15-30"),
    (60.0, "$30-60"),
)


def price_band(price: float) -> str:
    for ceiling, label in PRICE_BANDS:
        if price < ceiling:
            return label
    return "$60+"


def _avg(values: list[float]) -> Optional[float]:
    return round(mean(values), 2) if values else None


def _rejection_reason(decision: Decision) -> str:
    return decision.rationale.split(".", 1)[0] if ". " in decision.rationale else "rejected"


def _summary(decision: Decision) -> dict[str, Any]:
    return {
        "id": decision.candidate_id,
        "title": decision.title,
        "score": decision.final_score,
        "tier": decision.tier,
        "roi": decision.roi,
        "recommendation": decision.recommendation,
    }


def build_batch_report(decisions: list[Decision], top: int = 5) -> dict[str, Any]:
    """Aggregate statistics over a batch of decisions."""
    errors = [d for d in decisions if d.tier == TIER_ERROR]
    evaluated = [d for d in decisions if d.tier != TIER_ERROR]
    approved = [d for d in evaluated if d.approved]
    rejected = [d for d in evaluated if not d.approved]

    scenario_margins: dict[str, list[float]] = {}
    for d in evaluated:
        if d.margin is None:
            continue
        for name, scenario in d.margin.scenarios.items():
            if scenario.ok:
                scenario_margins.setdefault(name, []).append(scenario.margin_pct)

    ranked = rank_decisions(approved)

    return {
        "total": len(decisions),
        "approved": len(approved),
        "rejected": len(rejected),
        "errors": len(errors),
        "approval_rate": round(len(approved) / len(evaluated) * 100, 2) if evaluated else 0.0,
        "average_scores": {
            "final": _avg([d.final_score for d in evaluated]),
            "quantitative": _avg([d.component_scores.get("quantitative", 0.0) for d in evaluated]),
            "qualitative": _avg([d.component_scores.get("qualitative", 0.0) for d in evaluated]),
            "margin": _avg([d.component_scores.get("margin", 0.0) for d in evaluated]),
        },
        "tiers": dict(Counter(d.tier for d in decisions)),
        "match_methods": dict(Counter(d.match.method.value for d in evaluated if d.match is not None)),
        "rejection_reasons": dict(Counter(_rejection_reason(d) for d in rejected)),
        "error_reasons": dict(Counter(d.error or "unknown" for d in errors)),
        "average_margin_pct": {name: _avg(values) for name, values in scenario_margins.items()},
        "categories": dict(Counter(normalize_category(d.category).value for d in decisions)),
        "price_bands": dict(Counter(price_band(d.source_price) for d in decisions)),
        "review_required": sum(1 for d in evaluated if d.risk is not None and d.risk.review_required),
        "best": _summary(ranked[0]) if ranked else None,
        "top": [_summary(d) for d in ranked[:top]],
    }


def format_report(report: dict[str, Any]) -> str:
    """Plain-text rendering for the console."""
    lines = [
        "=" * 50,
        "VETTING REPORT",
        "=" * 50,
        f"Total: {report['total']} | approved: {report['approved']} | "
        f"rejected: {report['rejected']} | errors: {report['errors']}",
        f"Approval rate: {report['approval_rate']}%",
        f"Needs manual review: {report['review_required']}",
    ]

    scores = report["average_scores"]
    if scores["final"] is not None:
        lines.append(
            f"Average scores: final {scores['final']} | quant {scores['quantitative']} | "
            f"qual {scores['qualitative']} | margin {scores['margin']}"
        )

    if report["tiers"]:
        lines.append("Tiers: " + ", ".join(f"{k}={v}" for k, v in sorted(report["tiers"].items())))
    if report["match_methods"]:
        lines.append("Match methods: " + ", ".join(f"{k}={v}" for k, v in report["match_methods"].items()))
    if report["average_margin_pct"]:
        lines.append(
            "Average margin: " + ", ".join(f"{k} {v}%" for k, v in report["average_margin_pct"].items())
        )
    if report["rejection_reasons"]:
        lines.append("Rejection reasons:")
        for reason, count in sorted(report["rejection_reasons"].items(), key=lambda kv: -kv[1]):
            lines.append(f"  {count:>3}  {reason}")

    if report["top"]:
        lines.append("Top products:")
        for i, item in enumerate(report["top"], 1):
            roi = f"{item['roi']:.1f}%" if item["roi"] is not None else "-"
            lines.append(f"  {i}. [{item['tier']}] {item['score']:.1f}  ROI {roi}  {item['title'][:50]}")

    return "\n".join(lines)
