"""Tests for the batch report."""

import pytest

from vetting.analyze.decision import aggregate_decision, decision_from_error
from vetting.models import FilterVerdict, MarginAnalysis, MarginScenario
from vetting.report import build_batch_report, format_report, price_band


def _decision(config, make_candidate, cid, score, roi=30.0, **kw):
    realistic = MarginScenario(name="realistic", margin_pct=25.0, roi=roi, viable=True)
    margin = MarginAnalysis(scenarios={"realistic": realistic}, viability_score=score, viable=True)
    verdict = FilterVerdict(score=score, approved=score >= 50)
    return aggregate_decision(make_candidate(id=cid, **kw), verdict, verdict, margin, config)


def test_report_counts_and_ranking(config, make_candidate):
    """Approved, rejected and errored decisions are counted separately."""
    decisions = [
        _decision(config, make_candidate, "a", 90, roi=50.0),
        _decision(config, make_candidate, "b", 95, roi=10.0, price=40.0),
        _decision(config, make_candidate, "c", 20),
        decision_from_error(make_candidate(id="d"), RuntimeError("boom"), config=config),
    ]

    report = build_batch_report(decisions, top=1)

    assert (report["total"], report["approved"], report["rejected"], report["errors"]) == (4, 2, 1, 1)
    assert report["approval_rate"] == pytest.approx(66.67)
    assert report["best"]["id"] == "b"
    assert [t["id"] for t in report["top"]] == ["b"]
    assert report["error_reasons"] == {"boom": 1}
    assert report["rejection_reasons"] == {"quantitative filter failed": 1}
    assert report["average_margin_pct"] == {"realistic": 25.0}
    assert report["tiers"]["error"] == 1
    assert report["categories"] == {"home": 4}
    assert report["price_bands"] == {"$5-15": 3, "$30-60": 1}


def test_empty_report_formats(config):
    """An empty batch still renders."""
    report = build_batch_report([])
    assert report["best"] is None
    assert report["approval_rate"] == 0.0
    assert "VETTING REPORT" in format_report(report)


def test_format_lists_top_products(config, make_candidate):
    """Top products appear with their tier."""
    report = build_batch_report([_decision(config, make_candidate, "a", 90)])
    text = format_report(report)
    assert "Top products:" in text
    assert "[diamond]" in text


@pytest.mark.parametrize("price,band", [(3, "under $5"), (5, "$5-15"), (29.9, "$15-30"), (75, "$60+")])
def test_price_band(price, band):
    """Source prices fall into fixed bands."""
    assert price_band(price) == band
