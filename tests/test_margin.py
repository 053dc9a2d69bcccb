"""Tests for the multi-scenario margin calculator."""

import pytest

from vetting.analyze.margin import (
    CONSERVATIVE,
    REALISTIC,
    calculate_margin,
    classify_margin,
    compute_scenario,
    payback_units,
)
from vetting.analyze.matcher import price_statistics
from vetting.categories import Category
from vetting.errors import ComputationError, TotalFailure
from vetting.models import PriceStatistics


def test_reference_cost_breakdown(config):
    """$25.99 at 5.20 with 12% tax and R$12 shipping against a R$180 median."""
    stats = price_statistics([180.0])
    scenario = compute_scenario(REALISTIC, stats, 25.99, Category.OTHER, config)

    assert scenario.costs.purchase_cost == pytest.approx(135.15, abs=0.01)
    assert scenario.costs.landed_cost == pytest.approx(164.81, abs=0.05)
    assert scenario.gross_margin == pytest.approx(15.19, abs=0.05)
    assert scenario.gross_margin_pct == pytest.approx(8.4, abs=0.1)
    assert scenario.gross_classification == "marginal"
    assert scenario.classification == "unviable"
    # The marketplace fee comes on top, so the net margin is thinner still
    assert scenario.costs.marketplace_fee == pytest.approx(18.0)
    assert scenario.margin < scenario.gross_margin
    assert scenario.viable is False


def test_scenarios_are_ordered(config):
    """Optimistic >= realistic >= conservative margin for the same prices."""
    stats = price_statistics([100.0, 150.0, 180.0, 220.0, 300.0])
    for category in (Category.OTHER, Category.ELECTRONICS, Category.KITCHEN, Category.BEAUTY):
        analysis = calculate_margin(stats, 15.0, category, config)
        s = analysis.scenarios
        assert s["optimistic"].margin_pct >= s["realistic"].margin_pct >= s["conservative"].margin_pct


def test_category_multipliers_raise_electronics_tax(config):
    """Electronics pay 20% more import tax than the base rate."""
    stats = price_statistics([200.0])
    base = compute_scenario(REALISTIC, stats, 20.0, Category.OTHER, config)
    tech = compute_scenario(REALISTIC, stats, 20.0, Category.ELECTRONICS, config)
    assert tech.costs.import_tax > base.costs.import_tax
    assert tech.margin < base.margin


def test_viable_analysis_has_consensus_and_payback(config):
    """A healthy margin is viable, recommended and pays back."""
    stats = price_statistics([120.0, 125.0, 130.0])
    analysis = calculate_margin(stats, 10.0, Category.KITCHEN, config, market_size=25)

    assert analysis.viable is True
    assert analysis.consensus.successful == 3
    assert analysis.consensus.reliability == pytest.approx(100.0)
    assert analysis.consensus.recommendation == "highly_recommended"
    assert 0 <= analysis.viability_score <= 100
    assert analysis.payback_units is not None and analysis.payback_units >= 1
    assert not analysis.failures


def test_partial_scenario_failure_is_recorded(config):
    """A missing p25 price only fails the conservative scenario."""
    stats = PriceStatistics(count=2, min=150, p25=0.0, median=180.0, p75=200.0, max=210, mean=180)
    analysis = calculate_margin(stats, 10.0, Category.OTHER, config)

    assert set(analysis.failures) == {"conservative"}
    assert analysis.scenarios["conservative"].error
    assert analysis.consensus.successful == 2
    assert analysis.consensus.reliability == pytest.approx(66.67, abs=0.01)
    assert analysis.realistic is not None


def test_total_failure_when_price_is_not_positive(config):
    """No scenario can be computed without a source price."""
    stats = price_statistics([180.0])
    with pytest.raises(TotalFailure) as exc:
        calculate_margin(stats, 0.0, Category.OTHER, config)
    assert set(exc.value.failures) == {"optimistic", "realistic", "conservative"}


def test_compute_scenario_rejects_missing_sale_price(config):
    """Empty statistics cannot produce a sale price."""
    with pytest.raises(ComputationError):
        compute_scenario(CONSERVATIVE, PriceStatistics(), 10.0, Category.OTHER, config)


def test_margin_risks_flag_loss_and_small_market(config):
    """A thin margin in a small market is tagged accordingly."""
    stats = price_statistics([70.0, 75.0])
    analysis = calculate_margin(stats, 10.0, Category.ELECTRONICS, config, market_size=3)
    assert "conservative_loss" in analysis.risks
    assert "small_market" in analysis.risks
    assert analysis.viable is False


def test_payback_is_capped(config):
    """Tiny margins still report a bounded payback."""
    stats = price_statistics([180.0])
    scenario = compute_scenario(REALISTIC, stats, 1.0, Category.OTHER, config)
    tiny = scenario.model_copy(update={"margin": 0.01})
    assert payback_units(tiny, cap=60) == 60
    assert payback_units(scenario.model_copy(update={"margin": -5.0}), cap=60) is None


@pytest.mark.parametrize(
    "pct,label",
    [(45, "excellent"), (30, "very good"), (15, "good"), (6, "marginal"), (-3, "unviable")],
)
def test_classify_margin(pct, label):
    """Margin classes follow the percentage bands."""
    assert classify_margin(pct) == label
