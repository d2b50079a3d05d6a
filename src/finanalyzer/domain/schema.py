"""Report schema: the single translation boundary from raw extractor JSON to typed reports.

``validate`` is pure and deterministic. It never raises for bad input; the
outcome is carried by :class:`ValidationResult`. ``parse_report`` is the
raising convenience used by adapters that propagate ``SchemaError``.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from finanalyzer.domain.errors import SchemaError, SchemaIncomplete, SchemaTypeMismatch
from finanalyzer.domain.models.report import (
    KNOWN_KEYS,
    REPORT_TYPES,
    AudioBriefing,
    ExpenseCategory,
    FinancialReport,
    MarketContext,
    QuarterlyTrend,
    VisualizedGuidance,
)

REQUIRED_FIELDS: Tuple[str, ...] = (
    "companyName",
    "ticker",
    "reportType",
    "reportPeriod",
    "reportYear",
    "revenue",
    "revenuePrior",
    "netIncome",
    "eps",
    "grossMargin",
    "expenses",
    "trends",
    "highlights",
    "sentimentScore",
)
OPTIONAL_NUMERIC_FIELDS: Tuple[str, ...] = ("netIncomePrior", "epsPrior", "operatingMargin", "netMargin")

PERIOD_PATTERN = re.compile(r"[A-Za-z]+\d*")
_NUMERIC_TEXT = re.compile(r"[+-]?\d[\d,_ ]*(?:\.\d+)?|[+-]?\.\d+")
MIN_REPORT_YEAR = 1900

# JSON type description sent to the extractor as the response schema.
REPORT_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "companyName": {"type": "string"},
        "ticker": {"type": "string"},
        "reportType": {"type": "string", "enum": list(REPORT_TYPES)},
        "reportPeriod": {"type": "string", "description": "e.g., Q3 or FY"},
        "reportYear": {"type": "integer"},
        "revenue": {"type": "number"},
        "revenuePrior": {"type": "number"},
        "netIncome": {"type": "number"},
        "netIncomePrior": {"type": "number"},
        "eps": {"type": "number"},
        "epsPrior": {"type": "number"},
        "grossMargin": {"type": "number"},
        "operatingMargin": {"type": "number"},
        "netMargin": {"type": "number"},
        "sentimentScore": {
            "type": "integer",
            "description": "A score from 0 (very bearish) to 100 (very bullish) based on management tone.",
        },
        "expenses": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"category": {"type": "string"}, "amount": {"type": "number"}},
                "required": ["category", "amount"],
            },
        },
        "trends": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "period": {"type": "string"},
                    "revenue": {"type": "number"},
                    "netIncome": {"type": "number"},
                },
                "required": ["period", "revenue", "netIncome"],
            },
        },
        "highlights": {"type": "array", "items": {"type": "string"}},
        "managementCommentary": {"type": "string"},
    },
    "required": list(REQUIRED_FIELDS),
}


@dataclass
class ValidationResult:
    """Either a valid report or the first schema error encountered."""

    report: Optional[FinancialReport] = None
    error: Optional[SchemaError] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None

    def unwrap(self) -> FinancialReport:
        if self.error is not None:
            raise self.error
        assert self.report is not None
        return self.report


def validate(raw: Union[Dict[str, Any], FinancialReport], *, current_year: Optional[int] = None) -> ValidationResult:
    """Validate and normalize a raw record into a :class:`FinancialReport`."""
    if isinstance(raw, FinancialReport):
        raw = raw.to_dict()
    if not isinstance(raw, dict):
        return ValidationResult(error=SchemaTypeMismatch("<root>", "object", type(raw).__name__))

    warnings: List[str] = []
    try:
        report = _build(raw, warnings, current_year or date.today().year)
    except SchemaError as exc:
        return ValidationResult(error=exc, warnings=warnings)
    return ValidationResult(report=report, warnings=warnings)


def parse_report(raw: Union[Dict[str, Any], FinancialReport], *, current_year: Optional[int] = None) -> FinancialReport:
    """Raising variant of :func:`validate`."""
    return validate(raw, current_year=current_year).unwrap()


def _build(raw: Dict[str, Any], warnings: List[str], current_year: int) -> FinancialReport:
    for name in REQUIRED_FIELDS:
        if raw.get(name) is None:
            raise SchemaIncomplete(name)

    ticker = _string(raw, "ticker").strip().upper()
    if not ticker:
        raise SchemaIncomplete("ticker")

    period = _string(raw, "reportPeriod").strip()
    if not PERIOD_PATTERN.fullmatch(period):
        raise SchemaTypeMismatch("reportPeriod", "label shaped like [A-Za-z]+\\d*", raw["reportPeriod"])

    year = _year(raw["reportYear"], current_year)

    sentiment = _number(raw["sentimentScore"], "sentimentScore")
    clamped = int(round(min(100.0, max(0.0, sentiment))))
    if clamped != sentiment:
        warnings.append(f"sentimentScore {sentiment!r} normalized to {clamped}")

    optional = {
        name: (None if raw.get(name) is None else _number(raw[name], name)) for name in OPTIONAL_NUMERIC_FIELDS
    }

    return FinancialReport(
        id=str(raw.get("id") or ""),
        timestamp=int(_number(raw["timestamp"], "timestamp")) if raw.get("timestamp") is not None else 0,
        company_name=_string(raw, "companyName").strip(),
        ticker=ticker,
        report_type=_report_type(_string(raw, "reportType")),
        report_period=period,
        report_year=year,
        revenue=_number(raw["revenue"], "revenue"),
        revenue_prior=_number(raw["revenuePrior"], "revenuePrior"),
        net_income=_number(raw["netIncome"], "netIncome"),
        net_income_prior=optional["netIncomePrior"],
        eps=_number(raw["eps"], "eps"),
        eps_prior=optional["epsPrior"],
        gross_margin=_number(raw["grossMargin"], "grossMargin"),
        operating_margin=optional["operatingMargin"],
        net_margin=optional["netMargin"],
        sentiment_score=clamped,
        expenses=_expenses(raw["expenses"]),
        trends=_trends(raw["trends"]),
        highlights=_highlights(raw["highlights"]),
        management_commentary=_optional_string(raw, "managementCommentary"),
        market_context=_enrichment(raw, "marketContext", MarketContext.from_dict),
        audio_briefing=_enrichment(raw, "audioBriefing", AudioBriefing.from_dict),
        visualized_guidance=_enrichment(raw, "visualizedGuidance", VisualizedGuidance.from_dict),
        extras={k: v for k, v in raw.items() if k not in KNOWN_KEYS},
    )


def _number(value: Any, name: str) -> float:
    """Coerce to a finite float; digit strings with separators are accepted."""
    if isinstance(value, bool):
        raise SchemaTypeMismatch(name, "number", value)
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str) and _NUMERIC_TEXT.fullmatch(value.strip()):
        result = float(re.sub(r"[,_ ]", "", value.strip()))
    else:
        raise SchemaTypeMismatch(name, "number", value)
    if not math.isfinite(result):
        raise SchemaTypeMismatch(name, "finite number", value)
    return result


def _year(value: Any, current_year: int) -> int:
    if isinstance(value, bool):
        raise SchemaTypeMismatch("reportYear", "integer", value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise SchemaTypeMismatch("reportYear", "integer", value)
    if not MIN_REPORT_YEAR <= value <= current_year + 1:
        raise SchemaTypeMismatch("reportYear", f"integer in [{MIN_REPORT_YEAR}, {current_year + 1}]", value)
    return value


def _string(raw: Dict[str, Any], name: str) -> str:
    value = raw.get(name)
    if not isinstance(value, str):
        raise SchemaTypeMismatch(name, "string", value)
    return value


def _optional_string(raw: Dict[str, Any], name: str) -> str:
    if raw.get(name) is None:
        return ""
    return _string(raw, name)


def _report_type(value: str) -> str:
    stripped = value.strip()
    for known in REPORT_TYPES:
        if stripped.lower() == known.lower():
            return known
    return stripped or "Other"


def _sequence(value: Any, name: str) -> List[Any]:
    if not isinstance(value, (list, tuple)):
        raise SchemaTypeMismatch(name, "array", value)
    return list(value)


def _expenses(value: Any) -> Tuple[ExpenseCategory, ...]:
    items: List[ExpenseCategory] = []
    seen = set()
    for idx, entry in enumerate(_sequence(value, "expenses")):
        name = f"expenses[{idx}]"
        if not isinstance(entry, dict):
            raise SchemaTypeMismatch(name, "object", entry)
        if entry.get("category") is None:
            raise SchemaIncomplete(f"{name}.category")
        if entry.get("amount") is None:
            raise SchemaIncomplete(f"{name}.amount")
        category = _string(entry, "category").strip()
        if category in seen:
            raise SchemaTypeMismatch(f"{name}.category", "unique category", category)
        seen.add(category)
        items.append(ExpenseCategory(category=category, amount=_number(entry["amount"], f"{name}.amount")))
    return tuple(items)


def _trends(value: Any) -> Tuple[QuarterlyTrend, ...]:
    items: List[QuarterlyTrend] = []
    seen = set()
    for idx, entry in enumerate(_sequence(value, "trends")):
        name = f"trends[{idx}]"
        if not isinstance(entry, dict):
            raise SchemaTypeMismatch(name, "object", entry)
        for key in ("period", "revenue", "netIncome"):
            if entry.get(key) is None:
                raise SchemaIncomplete(f"{name}.{key}")
        period = _string(entry, "period").strip()
        if period in seen:
            raise SchemaTypeMismatch(f"{name}.period", "unique period label", period)
        seen.add(period)
        items.append(
            QuarterlyTrend(
                period=period,
                revenue=_number(entry["revenue"], f"{name}.revenue"),
                net_income=_number(entry["netIncome"], f"{name}.netIncome"),
            )
        )
    return tuple(items)


def _highlights(value: Any) -> Tuple[str, ...]:
    items = _sequence(value, "highlights")
    for idx, entry in enumerate(items):
        if not isinstance(entry, str):
            raise SchemaTypeMismatch(f"highlights[{idx}]", "string", entry)
    return tuple(items)


def _enrichment(raw: Dict[str, Any], name: str, factory: Callable[[Dict[str, Any]], Any]) -> Any:
    value = raw.get(name)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise SchemaTypeMismatch(name, "object", value)
    try:
        return factory(value)
    except (TypeError, ValueError) as exc:
        raise SchemaTypeMismatch(name, "enrichment object", value) from exc
