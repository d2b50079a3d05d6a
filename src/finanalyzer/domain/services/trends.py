"""Aggregated trend views across the report library using pandas."""
from __future__ import annotations

from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from finanalyzer.domain.models.report import FinancialReport
from finanalyzer.domain.services.metrics import chronology_key, growth, period_ordinal

LIBRARY_COLUMNS = [
    "id",
    "ticker",
    "company",
    "report_type",
    "period",
    "year",
    "period_ordinal",
    "revenue",
    "net_income",
    "eps",
    "gross_margin",
    "operating_margin",
    "net_margin",
    "revenue_yoy",
    "net_income_yoy",
    "sentiment",
]


def library_frame(reports: Iterable[FinancialReport], ticker: Optional[str] = None) -> pd.DataFrame:
    """One row per report in chronological order, optionally for one ticker."""
    selected = [r for r in reports if ticker is None or r.ticker == ticker.upper()]
    rows = [
        {
            "id": r.id,
            "ticker": r.ticker,
            "company": r.company_name,
            "report_type": r.report_type,
            "period": r.report_period,
            "year": r.report_year,
            "period_ordinal": period_ordinal(r.report_period),
            "revenue": r.revenue,
            "net_income": r.net_income,
            "eps": r.eps,
            "gross_margin": r.gross_margin,
            "operating_margin": _nan_if_none(r.operating_margin),
            "net_margin": _nan_if_none(r.net_margin),
            "revenue_yoy": growth(r.revenue, r.revenue_prior),
            "net_income_yoy": growth(r.net_income, r.net_income_prior) if r.net_income_prior is not None else np.nan,
            "sentiment": r.sentiment_score,
        }
        for r in sorted(selected, key=chronology_key)
    ]
    return pd.DataFrame(rows, columns=LIBRARY_COLUMNS)


def merge_trends(reports: Iterable[FinancialReport], ticker: str) -> pd.DataFrame:
    """Union of trend points for a ticker; newer reports override older period values."""
    ordered: List[FinancialReport] = sorted(
        (r for r in reports if r.ticker == ticker.upper()),
        key=chronology_key,
    )
    merged: dict = {}
    for report in ordered:
        for point in report.trends:
            # dict keeps first-seen insertion order while later values overwrite.
            merged[point.period] = {
                "period": point.period,
                "revenue": point.revenue,
                "net_income": point.net_income,
                "source_id": report.id,
            }
    frame = pd.DataFrame(list(merged.values()), columns=["period", "revenue", "net_income", "source_id"])
    if frame.empty:
        frame["revenue_change"] = pd.Series(dtype=float)
    else:
        frame["revenue_change"] = frame["revenue"].pct_change(fill_method=None) * 100
    return frame


def _nan_if_none(value: Optional[float]) -> float:
    return np.nan if value is None else value
