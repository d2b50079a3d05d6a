"""Pairwise variance analysis between a baseline and a benchmark report.

Variance is always ``benchmark - baseline``. Validation runs first and yields
two lists: comparability warnings (entity mismatch, reverse chronology) that
never block results, and errors (critical data missing) that suppress the
metric rows entirely.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

import pandas as pd

from finanalyzer.domain.errors import ComparisonInvalid
from finanalyzer.domain.models.report import FinancialReport
from finanalyzer.domain.services.metrics import (
    FLAT,
    chronology_key,
    growth,
    variance_direction,
)

ENTITY_MISMATCH = "EntityMismatch"
REVERSE_CHRONOLOGY = "ReverseChronology"
CRITICAL_DATA_MISSING = "CriticalDataMissing"

CRITICAL_METRICS: Tuple[Tuple[str, str], ...] = (
    ("revenue", "revenue"),
    ("netIncome", "net_income"),
    ("eps", "eps"),
    ("revenuePrior", "revenue_prior"),
    ("netIncomePrior", "net_income_prior"),
    ("epsPrior", "eps_prior"),
)

CURRENCY = "currency"
PERCENT = "percent"
RAW = "raw"

EXPORT_COLUMNS = ("Metric", "Baseline", "Benchmark", "Delta (Abs)", "Delta (%)")
NOT_APPLICABLE = "N/A"


@dataclass(frozen=True)
class MetricSpec:
    key: str
    label: str
    fmt: str
    extract: Callable[[FinancialReport], Optional[float]]
    invert: bool = False


ROW_SPECS: Tuple[MetricSpec, ...] = (
    MetricSpec("revenue", "Total Revenue", CURRENCY, lambda r: r.revenue),
    MetricSpec("revenueGrowth", "Revenue Growth YoY", PERCENT, lambda r: growth(r.revenue, r.revenue_prior)),
    MetricSpec("netIncome", "Net Income", CURRENCY, lambda r: r.net_income),
    MetricSpec("eps", "Diluted EPS", RAW, lambda r: r.eps),
    MetricSpec("grossMargin", "Gross Margin", PERCENT, lambda r: r.gross_margin),
    MetricSpec("operatingMargin", "Operating Margin", PERCENT, lambda r: r.operating_margin),
    MetricSpec("netMargin", "Net Margin", PERCENT, lambda r: r.net_margin),
)


@dataclass(frozen=True)
class ValidationIssue:
    kind: str
    message: str
    metric: Optional[str] = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class VarianceRow:
    """One metric line: values, absolute/percent delta and direction."""

    key: str
    label: str
    fmt: str
    baseline: Optional[float]
    benchmark: Optional[float]
    delta: Optional[float]
    pct_change: Optional[float]
    direction: str
    invert: bool = False

    @property
    def is_flat(self) -> bool:
        return self.direction == FLAT


@dataclass
class ComparisonResult:
    baseline: FinancialReport
    benchmark: FinancialReport
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    rows: List[VarianceRow] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def row(self, key: str) -> VarianceRow:
        for row in self.rows:
            if row.key == key:
                return row
        raise KeyError(key)


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def variance_row(spec: MetricSpec, v1: Optional[float], v2: Optional[float]) -> VarianceRow:
    if not (_finite(v1) and _finite(v2)):
        return VarianceRow(spec.key, spec.label, spec.fmt, v1, v2, None, None, FLAT, spec.invert)
    delta = v2 - v1
    pct = delta / abs(v1) * 100 if abs(v1) > 0 else 0.0
    return VarianceRow(
        key=spec.key,
        label=spec.label,
        fmt=spec.fmt,
        baseline=v1,
        benchmark=v2,
        delta=delta,
        pct_change=pct,
        direction=variance_direction(delta, spec.invert),
        invert=spec.invert,
    )


class ComparisonEngine:
    """Validate comparability and compute variance rows for two reports."""

    def __init__(self, row_specs: Sequence[MetricSpec] = ROW_SPECS) -> None:
        self._row_specs = tuple(row_specs)

    def validate(self, baseline: FinancialReport, benchmark: FinancialReport) -> ComparisonResult:
        result = ComparisonResult(baseline=baseline, benchmark=benchmark)

        if baseline.ticker != benchmark.ticker:
            result.warnings.append(
                ValidationIssue(
                    ENTITY_MISMATCH,
                    f"Entity Mismatch: comparing {baseline.ticker} ({baseline.company_name}) with "
                    f"{benchmark.ticker} ({benchmark.company_name}). Metric variances may not reflect "
                    "organic performance trends.",
                )
            )

        if chronology_key(benchmark) < chronology_key(baseline):
            result.warnings.append(
                ValidationIssue(
                    REVERSE_CHRONOLOGY,
                    "Reverse Chronology: the benchmark period is older than the baseline. Percentage "
                    "changes reflect historical contraction rather than forward growth.",
                )
            )

        for metric, attr in CRITICAL_METRICS:
            if not (_finite(getattr(baseline, attr)) and _finite(getattr(benchmark, attr))):
                result.errors.append(
                    ValidationIssue(
                        CRITICAL_DATA_MISSING,
                        f"Critical data point missing: {metric} is required for variance modeling.",
                        metric=metric,
                    )
                )
        return result

    def compare(self, baseline: FinancialReport, benchmark: FinancialReport) -> ComparisonResult:
        result = self.validate(baseline, benchmark)
        if result.is_valid:
            result.rows = [
                variance_row(spec, spec.extract(baseline), spec.extract(benchmark)) for spec in self._row_specs
            ]
        return result

    def export_table(self, result: ComparisonResult, exported_at: Optional[datetime] = None) -> List[List[Any]]:
        """Lay the comparison out as the delta CSV: header block, blank line, metric rows."""
        if not result.is_valid:
            raise ComparisonInvalid(result.errors)
        base, bench = result.baseline, result.benchmark
        stamp = (exported_at or datetime.now()).isoformat(timespec="seconds")
        table: List[List[Any]] = [
            ["Analysis Type", "Comparative Variance Report"],
            ["Export Date", stamp],
            ["Entity 1 (Baseline)", f"{base.company_name} ({base.ticker})"],
            ["Entity 2 (Benchmark)", f"{bench.company_name} ({bench.ticker})"],
            [""],
            [
                "Metric",
                f"Baseline ({base.report_period} {base.report_year})",
                f"Benchmark ({bench.report_period} {bench.report_year})",
                "Delta (Abs)",
                "Delta (%)",
            ],
        ]
        for row in result.rows:
            if row.fmt == PERCENT or row.pct_change is None:
                pct_cell: Any = NOT_APPLICABLE
            else:
                pct_cell = f"{row.pct_change:.2f}%"
            table.append([row.label, row.baseline, row.benchmark, row.delta, pct_cell])
        return table


def table_frame(table: Sequence[Sequence[Any]]) -> pd.DataFrame:
    """Parse an exported table back into a frame keyed by metric label."""
    header_idx = next(i for i, line in enumerate(table) if line and line[0] == "Metric")
    body = [list(line) for line in table[header_idx + 1 :] if line and line[0]]
    frame = pd.DataFrame(body, columns=list(EXPORT_COLUMNS))
    for column in ("Baseline", "Benchmark", "Delta (Abs)"):
        frame[column] = pd.to_numeric(frame[column], errors="coerce")
    pct = frame["Delta (%)"].astype(str).str.rstrip("%")
    frame["Delta (%)"] = pd.to_numeric(pct.where(pct != NOT_APPLICABLE), errors="coerce")
    return frame.set_index("Metric")
