"""Multi-scenario margin calculator: pure math, no I/O.

Each scenario is the same cost model evaluated with an explicit
`ScenarioAdjustment` (rate multipliers plus which price quantile is assumed as
the sale price):

    purchase = source_price * fx
    landed   = (purchase + shipping) * (1 + import_tax)
    total    = landed + sale_price * marketplace_fee
    margin   = sale_price - total
"""

from __future__ import annotations

from typing import Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

from vetting.categories import Category, policy_for
from vetting.config import VettingConfig
from vetting.errors import ComputationError, PartialScenarioFailure, TotalFailure
from vetting.models import (
    CostBreakdown,
    MarginAnalysis,
    MarginConsensus,
    MarginScenario,
    PriceStatistics,
)


class ScenarioAdjustment(BaseModel):
    """Multipliers applied to the base rates for one scenario."""

    model_config = ConfigDict(frozen=True)

    name: str
    fx: float = 1.0
    tax: float = 1.0
    shipping: float = 1.0
    fee: float = 1.0
    price_quantile: str = "median"  # field of PriceStatistics


OPTIMISTIC = ScenarioAdjustment(name="optimistic", fx=0.95, tax=0.8, shipping=0.7, fee=0.9, price_quantile="p75")
REALISTIC = ScenarioAdjustment(name="realistic")
CONSERVATIVE = ScenarioAdjustment(name="conservative", fx=1.1, tax=1.3, shipping=1.5, fee=1.2, price_quantile="p25")

SCENARIOS = (OPTIMISTIC, REALISTIC, CONSERVATIVE)


def classify_margin(margin_pct: float) -> str:
    if margin_pct >= 40:
        return "excellent"
    if margin_pct >= 25:
        return "very good"
    if margin_pct >= 15:
        return "good"
    if margin_pct >= 5:
        return "marginal"
    return "unviable"


def compute_scenario(
    adjustment: ScenarioAdjustment,
    stats: PriceStatistics,
    source_price: float,
    category: Category,
    config: VettingConfig,
) -> MarginScenario:
    """Evaluate the cost model for one scenario.

    Raises:
        ComputationError: non-positive source price or sale price.
    """
    if not source_price or source_price <= 0:
        raise ComputationError(f"source price must be positive, got {source_price}")
    sale_price = getattr(stats, adjustment.price_quantile, None)
    if not sale_price or sale_price <= 0:
        raise ComputationError(f"no positive {adjustment.price_quantile} sale price")

    costs = config.costs
    policy = policy_for(category, config.categories)

    fx = costs.fx_rate * adjustment.fx
    tax_rate = costs.import_tax * policy.tax_multiplier * adjustment.tax
    shipping = costs.shipping_base * policy.shipping_multiplier * adjustment.shipping
    fee_rate = costs.marketplace_fee * adjustment.fee

    purchase = source_price * fx
    landed = (purchase + shipping) * (1 + tax_rate)
    fee = sale_price * fee_rate
    total = landed + fee

    gross_margin = sale_price - landed
    margin = sale_price - total
    margin_pct = margin / sale_price * 100
    roi = margin / total * 100 if total > 0 else 0.0

    return MarginScenario(
        name=adjustment.name,
        sale_price=round(sale_price, 2),
        costs=CostBreakdown(
            purchase_cost=round(purchase, 2),
            shipping=round(shipping, 2),
            import_tax=round(landed - purchase - shipping, 2),
            landed_cost=round(landed, 2),
            marketplace_fee=round(fee, 2),
            total_cost=round(total, 2),
        ),
        margin=round(margin, 2),
        margin_pct=round(margin_pct, 2),
        gross_margin=round(gross_margin, 2),
        gross_margin_pct=round(gross_margin / sale_price * 100, 2),
        roi=round(roi, 2),
        viable=margin_pct >= costs.min_margin_pct,
        classification=classify_margin(margin_pct),
        gross_classification=classify_margin(gross_margin / sale_price * 100),
    )


def consensus(scenarios: dict[str, MarginScenario]) -> MarginConsensus:
    """How many scenarios succeeded and what they say together.

    The recommendation follows the realistic scenario when it computed,
    otherwise the average of whatever did.
    """
    ok = [s for s in scenarios.values() if s.ok]
    if not ok:
        return MarginConsensus(recommendation="critical_error")

    average = sum(s.margin_pct for s in ok) / len(ok)
    realistic = scenarios.get("realistic")
    basis = realistic.margin_pct if realistic is not None and realistic.ok else average

    if basis >= 25:
        recommendation = "highly_recommended"
    elif basis >= 15:
        recommendation = "recommended"
    elif basis >= 5:
        recommendation = "marginal"
    else:
        recommendation = "not_recommended"

    return MarginConsensus(
        successful=len(ok),
        reliability=round(len(ok) / len(SCENARIOS) * 100, 2),
        average_margin_pct=round(average, 2),
        recommendation=recommendation,
    )


def viability_score(
    realistic: Optional[MarginScenario],
    conservative: Optional[MarginScenario],
    stats: PriceStatistics,
    market_size: int,
) -> float:
    """0-100 margin component score for the decision aggregator."""
    score = 0.0

    if realistic is not None and realistic.ok:
        m = realistic.margin_pct
        if m >= 40:
            score += 50
        elif m >= 25:
            score += 40
        elif m >= 15:
            score += 30
        elif m >= 5:
            score += 15

    if conservative is not None and conservative.ok:
        m = conservative.margin_pct
        if m >= 15:
            score += 25
        elif m >= 5:
            score += 15
        elif m >= 0:
            score += 5

    if market_size >= 30:
        score += 15
    elif market_size >= 20:
        score += 12
    elif market_size >= 15:
        score += 8
    elif market_size >= 10:
        score += 5

    if stats.mean > 0:
        spread = (stats.max - stats.min) / stats.mean
        if spread <= 1:
            score += 10
        elif spread <= 1.5:
            score += 7
        elif spread <= 2:
            score += 4
        else:
            score += 1

    return max(0.0, min(100.0, score))


def margin_risks(
    scenarios: dict[str, MarginScenario],
    stats: PriceStatistics,
    market_size: int,
    category: Category,
    config: VettingConfig,
) -> list[str]:
    risks = []
    conservative = scenarios.get("conservative")
    realistic = scenarios.get("realistic")

    if conservative is not None and conservative.ok:
        if conservative.margin_pct < 5:
            risks.append("conservative_loss")
        elif conservative.margin_pct < 10:
            risks.append("conservative_thin")
    if realistic is not None and realistic.ok and 5 <= realistic.margin_pct < 15:
        risks.append("realistic_monitoring")
    if stats.mean > 0 and (stats.max - stats.min) / stats.mean > 1.5:
        risks.append("high_volatility")
    if market_size < 10:
        risks.append("small_market")
    elif market_size > 50:
        risks.append("competitive_market")
    if policy_for(category, config.categories).sensitive and realistic is not None and realistic.ok \
            and realistic.margin_pct < 20:
        risks.append("tech_obsolescence")
    return risks


def payback_units(scenario: Optional[MarginScenario], cap: int) -> Optional[int]:
    """Units to sell before the per-unit margin covers one unit's purchase cost."""
    if scenario is None or not scenario.ok or scenario.margin <= 0 or scenario.costs is None:
        return None
    return min(cap, round(scenario.costs.purchase_cost / scenario.margin))


def calculate_margin(
    stats: PriceStatistics,
    source_price: float,
    category: Category,
    config: VettingConfig,
    market_size: Optional[int] = None,
) -> MarginAnalysis:
    """Run all three scenarios and summarize them.

    Args:
        stats: Price distribution of the matched listings
        source_price: Unit price on the primary marketplace (foreign currency)
        category: Canonical category, selects the tax/shipping multipliers
        config: Engine configuration
        market_size: Number of listings the search returned (defaults to stats.count)

    Returns:
        MarginAnalysis; a failed scenario is kept with its error set.

    Raises:
        TotalFailure: if no scenario could be computed.
    """
    scenarios: dict[str, MarginScenario] = {}
    failures: dict[str, str] = {}

    for adjustment in SCENARIOS:
        try:
            scenarios[adjustment.name] = compute_scenario(adjustment, stats, source_price, category, config)
        except (ComputationError, ArithmeticError, ValueError) as e:
            partial = PartialScenarioFailure(adjustment.name, str(e), cause=e)
            logger.warning("Margin scenario {} failed: {}", adjustment.name, partial)
            failures[adjustment.name] = str(e)
            scenarios[adjustment.name] = MarginScenario(name=adjustment.name, error=str(e))

    if len(failures) == len(SCENARIOS):
        raise TotalFailure("all margin scenarios failed", failures=failures)

    size = stats.count if market_size is None else market_size
    realistic = scenarios.get("realistic")
    conservative = scenarios.get("conservative")

    analysis = MarginAnalysis(
        scenarios=scenarios,
        consensus=consensus(scenarios),
        viability_score=viability_score(realistic, conservative, stats, size),
        risks=margin_risks(scenarios, stats, size, category, config),
        payback_units=payback_units(realistic, config.costs.payback_cap),
        viable=bool(realistic is not None and realistic.ok and realistic.viable),
        failures=failures,
    )
    logger.debug(
        "Margin: realistic={}% viable={} score={}",
        realistic.margin_pct if realistic is not None and realistic.ok else None,
        analysis.viable, analysis.viability_score,
    )
    return analysis
