"""Tests for the decision aggregator."""

import itertools

import pytest

from vetting.analyze.decision import (
    aggregate_decision,
    decision_from_error,
    rank_decisions,
    tier_for,
    weighted_score,
)
from vetting.errors import NetworkError
from vetting.models import FilterVerdict, MarginAnalysis, MarginScenario, RiskAssessment


def _verdict(score: float, approved) -> FilterVerdict:
    return FilterVerdict(score=score, approved=approved)


def _margin(score: float, viable: bool, margin_pct: float = 30.0, roi: float = 40.0) -> MarginAnalysis:
    realistic = MarginScenario(name="realistic", margin_pct=margin_pct, roi=roi, viable=viable)
    return MarginAnalysis(scenarios={"realistic": realistic}, viability_score=score, viable=viable)


def test_strong_candidate_is_approved(config, make_candidate):
    """90/80/80 with everything passing lands in platinum."""
    decision = aggregate_decision(
        make_candidate(), _verdict(90, True), _verdict(80, True), _margin(80, True), config,
    )
    assert decision.final_score == pytest.approx(83.0)
    assert decision.approved is True
    assert decision.tier == "platinum"
    assert decision.criteria_met == 4
    assert decision.recommendation == "recommended"
    assert decision.roi == pytest.approx(40.0)
    assert "PASS" in decision.rationale


def test_score_below_minimum_rejects(config, make_candidate):
    """Three passing criteria are not enough without the score."""
    decision = aggregate_decision(
        make_candidate(), _verdict(60, True), _verdict(50, True), _margin(60, True), config,
    )
    assert decision.final_score == pytest.approx(57.0)
    assert decision.criteria_met == 3
    assert decision.approved is False
    assert decision.rationale.startswith("final score below minimum")
    assert decision.recommendation == "reject: criteria not met"


def test_three_of_four_with_score_approves(config, make_candidate):
    """A missed margin criterion is tolerated when the rest hold."""
    decision = aggregate_decision(
        make_candidate(), _verdict(100, True), _verdict(100, True), _margin(60, False, margin_pct=12), config,
    )
    assert decision.final_score == pytest.approx(84.0)
    assert decision.criteria == {"quantitative": True, "qualitative": True, "margin": False, "score": True}
    assert decision.approved is True
    assert decision.recommendation == "restricted"


def test_neutral_qualitative_is_not_a_rejection(config, make_candidate):
    """approved=None from the qualitative filter counts as not rejected."""
    decision = aggregate_decision(
        make_candidate(), _verdict(90, True), _verdict(70, None), _margin(90, True), config,
    )
    assert decision.criteria["qualitative"] is True


def test_missing_margin_stage(config, make_candidate):
    """Without a margin analysis the margin component is zero."""
    decision = aggregate_decision(make_candidate(), _verdict(100, True), _verdict(100, True), None, config)
    assert decision.component_scores["margin"] == 0.0
    assert decision.final_score == pytest.approx(60.0)
    assert decision.approved is False
    assert decision.tier == "silver"


def test_review_flag_downgrades_recommendation(config, make_candidate):
    """An approved candidate that needs review is not auto-recommended."""
    risk = RiskAssessment(score=55, review_required=True, review_reasons=["risk score 55 >= 50"])
    decision = aggregate_decision(
        make_candidate(), _verdict(90, True), _verdict(80, True), _margin(80, True), config, risk=risk,
    )
    assert decision.approved is True
    assert decision.recommendation == "manual_review"


def test_properties_hold_over_grid(config, make_candidate):
    """Scores stay in range, approval implies 3 criteria, and the score is reproducible."""
    candidate = make_candidate()
    grid = itertools.product(
        (0, 35, 70, 100), (True, False), (0, 50, 100), (True, False, None), (0, 40, 100), (True, False),
    )
    for q, q_ok, ql, ql_ok, m, m_ok in grid:
        decision = aggregate_decision(candidate, _verdict(q, q_ok), _verdict(ql, ql_ok), _margin(m, m_ok), config)
        assert 0 <= decision.final_score <= 100
        if decision.approved:
            assert decision.criteria_met >= config.decision.min_criteria
            assert decision.criteria["score"]
        recomputed = weighted_score(decision.component_scores, decision.weights)
        assert decision.final_score == pytest.approx(recomputed, abs=0.01)


@pytest.mark.parametrize(
    "score,tier",
    [(95, "diamond"), (90, "diamond"), (85, "platinum"), (72, "gold"), (60, "silver"), (55, "bronze"), (10, "inadequate")],
)
def test_tiers(score, tier):
    """Six bands from the final score."""
    assert tier_for(score) == tier


def test_error_decision_is_well_formed(config, make_candidate):
    """Failures still produce a rejected Decision with the cause attached."""
    decision = decision_from_error(make_candidate(), NetworkError("timeout", url="https://x"), config=config)
    assert decision.tier == "error"
    assert decision.approved is False
    assert decision.error == "timeout"
    assert decision.final_score == 0.0
    assert decision.weights == {"quantitative": 0.3, "qualitative": 0.3, "margin": 0.4}
    assert decision.error_details == {
        "error": "NETWORK_ERROR", "message": "timeout", "details": {"url": "https://x"},
    }


def test_error_decision_from_plain_exception(config, make_candidate):
    """Non-vetting exceptions are described by their type."""
    decision = decision_from_error(make_candidate(), RuntimeError("boom"), config=config)
    assert decision.error_details == {"error": "RuntimeError", "message": "boom"}


def test_ranking_breaks_ties_by_roi(config, make_candidate):
    """Equal scores: the higher ROI ranks first."""
    low = aggregate_decision(
        make_candidate(id="low"), _verdict(90, True), _verdict(80, True), _margin(80, True, roi=25.0), config,
    )
    high = aggregate_decision(
        make_candidate(id="high"), _verdict(90, True), _verdict(80, True), _margin(80, True, roi=55.0), config,
    )
    best = aggregate_decision(
        make_candidate(id="best"), _verdict(100, True), _verdict(100, True), _margin(100, True, roi=1.0), config,
    )
    assert low.final_score == high.final_score
    ranked = rank_decisions([low, best, high])
    assert [d.candidate_id for d in ranked] == ["best", "high", "low"]
