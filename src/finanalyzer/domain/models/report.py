"""Domain models describing an extracted earnings report and its enrichments."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Optional, Tuple

REPORT_TYPES = ("10-Q", "10-K", "Press Release", "Other")

# Attribute name -> persisted (camelCase) key.
FIELD_KEYS: Dict[str, str] = {
    "id": "id",
    "timestamp": "timestamp",
    "company_name": "companyName",
    "ticker": "ticker",
    "report_type": "reportType",
    "report_period": "reportPeriod",
    "report_year": "reportYear",
    "revenue": "revenue",
    "revenue_prior": "revenuePrior",
    "net_income": "netIncome",
    "net_income_prior": "netIncomePrior",
    "eps": "eps",
    "eps_prior": "epsPrior",
    "gross_margin": "grossMargin",
    "operating_margin": "operatingMargin",
    "net_margin": "netMargin",
    "sentiment_score": "sentimentScore",
    "expenses": "expenses",
    "trends": "trends",
    "highlights": "highlights",
    "management_commentary": "managementCommentary",
    "market_context": "marketContext",
    "audio_briefing": "audioBriefing",
    "visualized_guidance": "visualizedGuidance",
}
KNOWN_KEYS = frozenset(FIELD_KEYS.values())

PROVENANCE_FIELDS = ("company_name", "ticker", "report_type", "report_period", "report_year")
PRIMARY_METRIC_FIELDS = (
    "revenue",
    "revenue_prior",
    "net_income",
    "net_income_prior",
    "eps",
    "eps_prior",
)
ENRICHMENT_FIELDS = ("market_context", "audio_briefing", "visualized_guidance")


def _unknown(payload: Dict[str, Any], known: Tuple[str, ...]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k not in known}


@dataclass(frozen=True)
class ExpenseCategory:
    category: str
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "amount": self.amount}


@dataclass(frozen=True)
class QuarterlyTrend:
    period: str
    revenue: float
    net_income: float

    def to_dict(self) -> Dict[str, Any]:
        return {"period": self.period, "revenue": self.revenue, "netIncome": self.net_income}


@dataclass(frozen=True)
class MarketInsight:
    """Single grounding source backing a market context summary."""

    title: str
    uri: str
    snippet: str = ""
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extras, "title": self.title, "uri": self.uri, "snippet": self.snippet}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MarketInsight":
        return cls(
            title=str(payload.get("title") or "External Source"),
            uri=str(payload.get("uri") or ""),
            snippet=str(payload.get("snippet") or ""),
            extras=_unknown(payload, ("title", "uri", "snippet")),
        )


@dataclass(frozen=True)
class MarketContext:
    summary: str
    insights: Tuple[MarketInsight, ...] = ()
    timestamp: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extras,
            "summary": self.summary,
            "insights": [insight.to_dict() for insight in self.insights],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MarketContext":
        return cls(
            summary=str(payload.get("summary") or ""),
            insights=tuple(MarketInsight.from_dict(item) for item in payload.get("insights") or []),
            timestamp=int(payload.get("timestamp") or 0),
            extras=_unknown(payload, ("summary", "insights", "timestamp")),
        )


@dataclass(frozen=True)
class AudioBriefing:
    """Base64 encoded PCM briefing plus the text it narrates."""

    audio: str
    summary: str
    sample_rate: int = 24000
    timestamp: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extras,
            "audio": self.audio,
            "summary": self.summary,
            "sampleRate": self.sample_rate,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AudioBriefing":
        return cls(
            audio=str(payload.get("audio") or ""),
            summary=str(payload.get("summary") or ""),
            sample_rate=int(payload.get("sampleRate") or 24000),
            timestamp=int(payload.get("timestamp") or 0),
            extras=_unknown(payload, ("audio", "summary", "sampleRate", "timestamp")),
        )


@dataclass(frozen=True)
class VisualizedGuidance:
    """Reference to a generated guidance image (inline base64 payload)."""

    image: str
    mime_type: str = "image/png"
    prompt: str = ""
    timestamp: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extras,
            "image": self.image,
            "mimeType": self.mime_type,
            "prompt": self.prompt,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "VisualizedGuidance":
        return cls(
            image=str(payload.get("image") or ""),
            mime_type=str(payload.get("mimeType") or "image/png"),
            prompt=str(payload.get("prompt") or ""),
            timestamp=int(payload.get("timestamp") or 0),
            extras=_unknown(payload, ("image", "mimeType", "prompt", "timestamp")),
        )


@dataclass(frozen=True)
class FinancialReport:
    """Structured record extracted from one earnings disclosure."""

    company_name: str
    ticker: str
    report_type: str
    report_period: str
    report_year: int
    revenue: float
    revenue_prior: float
    net_income: float
    eps: float
    gross_margin: float
    sentiment_score: int
    net_income_prior: Optional[float] = None
    eps_prior: Optional[float] = None
    operating_margin: Optional[float] = None
    net_margin: Optional[float] = None
    expenses: Tuple[ExpenseCategory, ...] = ()
    trends: Tuple[QuarterlyTrend, ...] = ()
    highlights: Tuple[str, ...] = ()
    management_commentary: str = ""
    market_context: Optional[MarketContext] = None
    audio_briefing: Optional[AudioBriefing] = None
    visualized_guidance: Optional[VisualizedGuidance] = None
    id: str = ""
    timestamp: int = 0
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"{self.ticker} - {self.report_period} {self.report_year}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted camelCase shape, unknown fields included."""
        payload: Dict[str, Any] = dict(self.extras)
        for attr, key in FIELD_KEYS.items():
            value = getattr(self, attr)
            if attr in ENRICHMENT_FIELDS:
                if value is not None:
                    payload[key] = value.to_dict()
                continue
            if attr in ("expenses", "trends"):
                payload[key] = [item.to_dict() for item in value]
            elif attr == "highlights":
                payload[key] = list(value)
            else:
                payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "FinancialReport":
        """Rebuild a report from its persisted shape.

        Missing optional fields take their defaults; keys this model does not
        know about are kept in ``extras`` so they survive the next save.
        Raises ``KeyError``/``TypeError``/``ValueError`` on structurally broken
        entries.
        """
        if not isinstance(payload, dict):
            raise TypeError(f"Report entry must be an object, got {type(payload).__name__}")

        def opt_float(key: str) -> Optional[float]:
            value = payload.get(key)
            return None if value is None else float(value)

        market_context = payload.get("marketContext")
        audio = payload.get("audioBriefing")
        image = payload.get("visualizedGuidance")
        return cls(
            id=str(payload["id"]),
            timestamp=int(payload.get("timestamp") or 0),
            company_name=str(payload["companyName"]),
            ticker=str(payload["ticker"]),
            report_type=str(payload.get("reportType") or "Other"),
            report_period=str(payload["reportPeriod"]),
            report_year=int(payload["reportYear"]),
            revenue=float(payload["revenue"]),
            revenue_prior=float(payload["revenuePrior"]),
            net_income=float(payload["netIncome"]),
            net_income_prior=opt_float("netIncomePrior"),
            eps=float(payload["eps"]),
            eps_prior=opt_float("epsPrior"),
            gross_margin=float(payload["grossMargin"]),
            operating_margin=opt_float("operatingMargin"),
            net_margin=opt_float("netMargin"),
            sentiment_score=int(payload.get("sentimentScore") or 0),
            expenses=tuple(
                ExpenseCategory(category=str(item["category"]), amount=float(item["amount"]))
                for item in payload.get("expenses") or []
            ),
            trends=tuple(
                QuarterlyTrend(
                    period=str(item["period"]),
                    revenue=float(item["revenue"]),
                    net_income=float(item["netIncome"]),
                )
                for item in payload.get("trends") or []
            ),
            highlights=tuple(str(item) for item in payload.get("highlights") or []),
            management_commentary=str(payload.get("managementCommentary") or ""),
            market_context=MarketContext.from_dict(market_context) if market_context else None,
            audio_briefing=AudioBriefing.from_dict(audio) if audio else None,
            visualized_guidance=VisualizedGuidance.from_dict(image) if image else None,
            extras={k: v for k, v in payload.items() if k not in KNOWN_KEYS},
        )


def changed_fields(before: FinancialReport, after: FinancialReport) -> List[str]:
    """Names of dataclass fields whose values differ between two reports."""
    return [f.name for f in fields(FinancialReport) if getattr(before, f.name) != getattr(after, f.name)]


def reports_to_dicts(reports: Iterable[FinancialReport]) -> List[Dict[str, Any]]:
    return [report.to_dict() for report in reports]
