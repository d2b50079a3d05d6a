"""Pure helpers for growth, sentiment, chronology and currency presentation."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from finanalyzer.domain.models.report import FinancialReport

NEUTRAL_THRESHOLD = 1e-3

FLAT = "flat"
GOOD = "good"
BAD = "bad"

POSITIVE = "positive"
NEUTRAL = "neutral"
NEGATIVE = "negative"

SENTIMENT_LABELS: Tuple[Tuple[int, str], ...] = (
    (80, "Extremely Bullish"),
    (60, "Bullish"),
    (40, "Neutral"),
    (20, "Bearish"),
)
LOWEST_SENTIMENT_LABEL = "Extremely Bearish"

_COMPACT_UNITS: Tuple[Tuple[float, str], ...] = (
    (1e12, "T"),
    (1e9, "B"),
    (1e6, "M"),
    (1e3, "K"),
)
_PERIOD_ORDINAL = re.compile(r"[A-Za-z]+(\d+)")


def growth(current: float, prior: Optional[float]) -> float:
    """Percent change against ``|prior|``; 0 when there is no usable prior."""
    if not prior:
        return 0.0
    return (current - prior) / abs(prior) * 100


def sentiment_label(score: float) -> str:
    for threshold, label in SENTIMENT_LABELS:
        if score >= threshold:
            return label
    return LOWEST_SENTIMENT_LABEL


def sentiment_bucket(score: float) -> str:
    if score >= 70:
        return POSITIVE
    if score <= 30:
        return NEGATIVE
    return NEUTRAL


def format_currency(value: float, compact: bool = False, decimals: int = 2) -> str:
    """Render a dollar amount, e.g. ``-$54,321.00`` or ``$2.34B`` when compact."""
    magnitude = abs(value)
    text = f"${magnitude:,.{decimals}f}"
    if compact:
        for divisor, suffix in _COMPACT_UNITS:
            if magnitude >= divisor:
                text = f"${magnitude / divisor:.{decimals}f}{suffix}"
                break
    return f"-{text}" if value < 0 else text


def variance_direction(value: float, invert: bool = False) -> str:
    if abs(value) < NEUTRAL_THRESHOLD:
        return FLAT
    improved = value > 0
    if invert:
        improved = not improved
    return GOOD if improved else BAD


def period_ordinal(label: str) -> int:
    """Integer embedded in a period label ("Q3" -> 3); 0 for "FY", "1H" and the like."""
    match = _PERIOD_ORDINAL.fullmatch(label.strip())
    return int(match.group(1)) if match else 0


def chronology_key(report: FinancialReport) -> Tuple[int, int]:
    return (report.report_year, period_ordinal(report.report_period))


@dataclass(frozen=True)
class SummaryCard:
    """Headline figure shown for a single report."""

    label: str
    value: Optional[float]
    display: str
    change: Optional[float]
    direction: str


def summary_cards(report: FinancialReport) -> List[SummaryCard]:
    """Revenue, net income, EPS and operating margin cards with YoY change."""

    def card(label: str, value: Optional[float], display: str, prior: Optional[float]) -> SummaryCard:
        change = growth(value, prior) if value is not None and prior is not None else None
        direction = variance_direction(change) if change is not None else FLAT
        return SummaryCard(label=label, value=value, display=display, change=change, direction=direction)

    operating = report.operating_margin
    return [
        card("Revenue", report.revenue, format_currency(report.revenue, compact=True), report.revenue_prior),
        card(
            "Net Income",
            report.net_income,
            format_currency(report.net_income, compact=True),
            report.net_income_prior,
        ),
        card("EPS (Diluted)", report.eps, format_currency(report.eps), report.eps_prior),
        card(
            "Operating Margin",
            operating,
            f"{operating:.1f}%" if operating is not None else "N/A",
            None,
        ),
    ]
