from __future__ import annotations

from datetime import datetime

import pytest

from finanalyzer.domain.errors import ComparisonInvalid
from finanalyzer.domain.services.comparison import (
    CRITICAL_DATA_MISSING,
    ENTITY_MISMATCH,
    NOT_APPLICABLE,
    REVERSE_CHRONOLOGY,
    ComparisonEngine,
    table_frame,
)
from finanalyzer.domain.services.metrics import BAD, FLAT, GOOD

from factories import make_report


def _kinds(issues):
    return [issue.kind for issue in issues]


def test_same_entity_forward_comparison_is_clean():
    baseline = make_report("b", report_year=2023, report_period="Q3", revenue=900.0)
    benchmark = make_report("t", report_year=2024, report_period="Q3", revenue=1000.0)
    result = ComparisonEngine().compare(baseline, benchmark)
    assert result.is_valid
    assert result.warnings == []
    row = result.row("revenue")
    assert row.delta == 100.0
    assert abs(row.pct_change - 11.1111) < 1e-4
    assert row.direction == GOOD


def test_reverse_chronology_warns_but_stays_valid():
    baseline = make_report("b", report_year=2023, report_period="Q3", revenue=1000.0)
    benchmark = make_report("t", report_year=2022, report_period="Q2", revenue=700.0)
    result = ComparisonEngine().compare(baseline, benchmark)
    assert _kinds(result.warnings) == [REVERSE_CHRONOLOGY]
    assert result.is_valid
    assert result.row("revenue").delta == benchmark.revenue - baseline.revenue
    assert result.row("revenue").direction == BAD


def test_entity_mismatch_warns_regardless_of_numbers():
    baseline = make_report("b", ticker="AAA")
    benchmark = make_report("t", ticker="BBB")
    result = ComparisonEngine().compare(baseline, benchmark)
    assert ENTITY_MISMATCH in _kinds(result.warnings)
    assert result.is_valid


def test_missing_eps_prior_blocks_rows():
    baseline = make_report("b")
    benchmark = make_report("t", eps_prior=None)
    result = ComparisonEngine().compare(baseline, benchmark)
    assert not result.is_valid
    assert _kinds(result.errors) == [CRITICAL_DATA_MISSING]
    assert result.errors[0].metric == "epsPrior"
    assert result.rows == []


def test_missing_margin_yields_flat_row_without_delta():
    result = ComparisonEngine().compare(make_report("b"), make_report("t", operating_margin=None))
    assert result.is_valid
    row = result.row("operatingMargin")
    assert row.delta is None
    assert row.pct_change is None
    assert row.direction == FLAT


def test_zero_baseline_percent_is_zero():
    result = ComparisonEngine().compare(make_report("b", eps=0.0), make_report("t", eps=0.5))
    row = result.row("eps")
    assert row.delta == 0.5
    assert row.pct_change == 0.0


def test_compare_is_sign_commutative():
    engine = ComparisonEngine()
    first = make_report("b", report_year=2023, revenue=900.0, net_income=80.0, gross_margin=40.0)
    second = make_report("t", report_year=2024, revenue=1100.0, net_income=140.0, gross_margin=44.0)
    forward = engine.compare(first, second)
    backward = engine.compare(second, first)
    for row in forward.rows:
        other = backward.row(row.key)
        if row.delta is None:
            assert other.delta is None
        else:
            assert abs(row.delta + other.delta) < 1e-9
    assert _kinds(forward.warnings) == []
    assert _kinds(backward.warnings) == [REVERSE_CHRONOLOGY]


def test_export_table_layout_and_round_trip():
    engine = ComparisonEngine()
    baseline = make_report("b", report_year=2023, revenue=900.0)
    benchmark = make_report("t", report_year=2024, revenue=1000.0, net_margin=None)
    result = engine.compare(baseline, benchmark)
    table = engine.export_table(result, exported_at=datetime(2024, 11, 5, 9, 30))

    assert table[0] == ["Analysis Type", "Comparative Variance Report"]
    assert table[1] == ["Export Date", "2024-11-05T09:30:00"]
    assert table[2] == ["Entity 1 (Baseline)", "Acme Corp (ACME)"]
    assert table[4] == [""]
    assert table[5][1] == "Baseline (Q3 2023)"
    assert table[5][2] == "Benchmark (Q3 2024)"

    rows = {line[0]: line for line in table[6:]}
    assert rows["Total Revenue"][4] == "11.11%"
    assert rows["Gross Margin"][4] == NOT_APPLICABLE
    assert rows["Net Margin"][3] is None

    frame = table_frame(table)
    assert frame.loc["Total Revenue", "Baseline"] == 900.0
    assert frame.loc["Total Revenue", "Delta (Abs)"] == 100.0
    assert abs(frame.loc["Total Revenue", "Delta (%)"] - 11.11) < 1e-9
    assert frame["Delta (%)"].isna()["Gross Margin"]


def test_export_of_invalid_comparison_raises():
    engine = ComparisonEngine()
    result = engine.compare(make_report("b", net_income_prior=None), make_report("t"))
    with pytest.raises(ComparisonInvalid):
        engine.export_table(result)
