from __future__ import annotations

import pytest

from finanalyzer.domain.errors import SchemaIncomplete, SchemaTypeMismatch
from finanalyzer.domain.schema import parse_report, validate

from factories import raw_report


def test_validate_accepts_complete_payload():
    result = validate(raw_report(), current_year=2025)
    assert result.ok
    report = result.report
    assert report.ticker == "ACME"
    assert report.report_type == "10-Q"
    assert report.expenses[0].category == "R&D"
    assert report.trends[-1].net_income == 120.0
    assert report.highlights == ("Record quarterly revenue", "Raised full-year guidance")
    assert result.warnings == []


def test_validate_is_idempotent():
    first = validate(raw_report(extraField={"source": "upload"}), current_year=2025).report
    second = validate(first, current_year=2025).report
    assert second == first
    assert second.extras == {"extraField": {"source": "upload"}}


def test_missing_required_field_reports_field_name():
    payload = raw_report()
    del payload["grossMargin"]
    result = validate(payload, current_year=2025)
    assert not result.ok
    assert isinstance(result.error, SchemaIncomplete)
    assert result.error.field == "grossMargin"


def test_null_required_field_is_incomplete():
    result = validate(raw_report(revenue=None), current_year=2025)
    assert isinstance(result.error, SchemaIncomplete)
    assert result.error.field == "revenue"


def test_type_mismatch_on_non_numeric_revenue():
    result = validate(raw_report(revenue="a lot"), current_year=2025)
    assert isinstance(result.error, SchemaTypeMismatch)
    assert result.error.field == "revenue"


def test_numeric_strings_are_coerced():
    report = validate(raw_report(revenue="1,250.50", reportYear="2024"), current_year=2025).report
    assert report.revenue == 1250.5
    assert report.report_year == 2024


def test_booleans_are_not_numbers():
    result = validate(raw_report(eps=True), current_year=2025)
    assert isinstance(result.error, SchemaTypeMismatch)


def test_non_finite_numbers_rejected():
    result = validate(raw_report(revenue=float("nan")), current_year=2025)
    assert isinstance(result.error, SchemaTypeMismatch)


def test_sentiment_is_clamped_with_warning():
    result = validate(raw_report(sentimentScore=140), current_year=2025)
    assert result.ok
    assert result.report.sentiment_score == 100
    assert result.warnings


def test_ticker_is_normalized():
    assert validate(raw_report(ticker=" acme "), current_year=2025).report.ticker == "ACME"


def test_report_year_bounds():
    assert isinstance(validate(raw_report(reportYear=1899), current_year=2025).error, SchemaTypeMismatch)
    assert validate(raw_report(reportYear=2026), current_year=2025).ok
    assert isinstance(validate(raw_report(reportYear=2027), current_year=2025).error, SchemaTypeMismatch)


def test_period_shape_is_enforced():
    assert validate(raw_report(reportPeriod="FY"), current_year=2025).ok
    result = validate(raw_report(reportPeriod="1H"), current_year=2025)
    assert isinstance(result.error, SchemaTypeMismatch)
    assert result.error.field == "reportPeriod"


def test_report_type_canonicalized():
    assert validate(raw_report(reportType="press release"), current_year=2025).report.report_type == "Press Release"


def test_duplicate_expense_categories_rejected():
    expenses = [{"category": "R&D", "amount": 1}, {"category": "R&D", "amount": 2}]
    result = validate(raw_report(expenses=expenses), current_year=2025)
    assert isinstance(result.error, SchemaTypeMismatch)
    assert result.error.field == "expenses[1].category"


def test_duplicate_trend_periods_rejected():
    trends = [{"period": "Q1", "revenue": 1, "netIncome": 1}, {"period": "Q1", "revenue": 2, "netIncome": 2}]
    assert isinstance(validate(raw_report(trends=trends), current_year=2025).error, SchemaTypeMismatch)


def test_non_object_root_is_type_mismatch():
    result = validate(["not", "a", "report"])
    assert isinstance(result.error, SchemaTypeMismatch)


def test_parse_report_raises_schema_error():
    with pytest.raises(SchemaIncomplete):
        parse_report(raw_report(ticker=None), current_year=2025)


def test_enrichments_are_parsed():
    payload = raw_report(marketContext={"summary": "Shares rallied.", "insights": [{"title": "Wire", "uri": "https://x.test"}]})
    report = validate(payload, current_year=2025).report
    assert report.market_context.summary == "Shares rallied."
    assert report.market_context.insights[0].uri == "https://x.test"
