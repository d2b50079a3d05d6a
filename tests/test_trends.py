from __future__ import annotations

import math

from finanalyzer.domain.models.report import QuarterlyTrend
from finanalyzer.domain.services.trends import LIBRARY_COLUMNS, library_frame, merge_trends

from factories import make_report


def test_library_frame_is_chronological():
    reports = [
        make_report("new", report_year=2024, report_period="Q2"),
        make_report("old", report_year=2023, report_period="Q4"),
        make_report("other", ticker="BETA", report_year=2022),
    ]
    frame = library_frame(reports, ticker="acme")
    assert list(frame.columns) == LIBRARY_COLUMNS
    assert frame["id"].tolist() == ["old", "new"]
    assert abs(frame["revenue_yoy"].iloc[0] - 25.0) < 1e-9


def test_library_frame_missing_priors_are_nan():
    frame = library_frame([make_report("x", net_income_prior=None, net_margin=None)])
    assert math.isnan(frame["net_income_yoy"].iloc[0])
    assert math.isnan(frame["net_margin"].iloc[0])


def test_merge_trends_prefers_newer_reports():
    older = make_report(
        "old",
        report_year=2024,
        report_period="Q2",
        trends=(QuarterlyTrend("Q1", 900.0, 90.0), QuarterlyTrend("Q2", 950.0, 95.0)),
    )
    newer = make_report(
        "new",
        report_year=2024,
        report_period="Q3",
        trends=(QuarterlyTrend("Q2", 960.0, 96.0), QuarterlyTrend("Q3", 1008.0, 100.0)),
    )
    frame = merge_trends([newer, older], "ACME")
    assert frame["period"].tolist() == ["Q1", "Q2", "Q3"]
    assert frame.loc[frame["period"] == "Q2", "revenue"].item() == 960.0
    assert frame.loc[frame["period"] == "Q2", "source_id"].item() == "new"
    assert math.isnan(frame["revenue_change"].iloc[0])
    assert abs(frame["revenue_change"].iloc[2] - 5.0) < 1e-9


def test_merge_trends_unknown_ticker_is_empty():
    frame = merge_trends([make_report("a")], "NONE")
    assert frame.empty
    assert "revenue_change" in frame.columns
