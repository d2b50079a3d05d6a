"""Read-only selection helpers applied to library listings before comparison."""
from __future__ import annotations

from typing import Iterable, List

from finanalyzer.domain.models.report import FinancialReport

ALL_TYPES = "All"


def filter_by_report_type(reports: Iterable[FinancialReport], report_type: str = ALL_TYPES) -> List[FinancialReport]:
    """Restrict the candidate pool to one report type; "All" keeps everything."""
    if not report_type or report_type == ALL_TYPES:
        return list(reports)
    return [report for report in reports if report.report_type == report_type]


def search_reports(reports: Iterable[FinancialReport], query: str = "") -> List[FinancialReport]:
    """Case-insensitive substring match on company name or ticker."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(reports)
    return [
        report
        for report in reports
        if needle in report.company_name.lower() or needle in report.ticker.lower()
    ]


def available_report_types(reports: Iterable[FinancialReport]) -> List[str]:
    types = [ALL_TYPES]
    for report in reports:
        if report.report_type not in types:
            types.append(report.report_type)
    return types
