"""Shared builders for reports, raw payloads and fake model clients."""
from __future__ import annotations

import json
from dataclasses import replace
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from finanalyzer.domain.models.report import ExpenseCategory, FinancialReport, QuarterlyTrend

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF"


def raw_report(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "companyName": "Acme Corp",
        "ticker": "ACME",
        "reportType": "10-Q",
        "reportPeriod": "Q3",
        "reportYear": 2024,
        "revenue": 1000.0,
        "revenuePrior": 800.0,
        "netIncome": 120.0,
        "netIncomePrior": 100.0,
        "eps": 1.2,
        "epsPrior": 1.0,
        "grossMargin": 42.5,
        "operatingMargin": 18.0,
        "netMargin": 12.0,
        "sentimentScore": 65,
        "expenses": [{"category": "R&D", "amount": 150.0}, {"category": "SG&A", "amount": 90.0}],
        "trends": [
            {"period": "Q1", "revenue": 900.0, "netIncome": 100.0},
            {"period": "Q2", "revenue": 950.0, "netIncome": 110.0},
            {"period": "Q3", "revenue": 1000.0, "netIncome": 120.0},
        ],
        "highlights": ["Record quarterly revenue", "Raised full-year guidance"],
        "managementCommentary": "Demand remained robust across segments.",
    }
    payload.update(overrides)
    return payload


def make_report(report_id: str = "r1", **overrides: Any) -> FinancialReport:
    base = FinancialReport(
        id=report_id,
        timestamp=1_700_000_000_000,
        company_name="Acme Corp",
        ticker="ACME",
        report_type="10-Q",
        report_period="Q3",
        report_year=2024,
        revenue=1000.0,
        revenue_prior=800.0,
        net_income=120.0,
        net_income_prior=100.0,
        eps=1.2,
        eps_prior=1.0,
        gross_margin=42.5,
        operating_margin=18.0,
        net_margin=12.0,
        sentiment_score=65,
        expenses=(ExpenseCategory("R&D", 150.0),),
        trends=(QuarterlyTrend("Q2", 950.0, 110.0), QuarterlyTrend("Q3", 1000.0, 120.0)),
        highlights=("Record quarterly revenue",),
    )
    return replace(base, **overrides)


def chat_response(content: str, annotations: Optional[List[Any]] = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, annotations=annotations or [])
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeCompletions:
    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeSpeech:
    def __init__(self, content: Any = b"\x01\x00\x02\x00") -> None:
        self.content = content
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.content, Exception):
            raise self.content
        return SimpleNamespace(content=self.content)


class FakeImages:
    def __init__(self, b64: Any = "aW1hZ2U=") -> None:
        self.b64 = b64
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.b64, Exception):
            raise self.b64
        return SimpleNamespace(data=[SimpleNamespace(b64_json=self.b64)])


def fake_openai(*responses: Any, speech: Optional[FakeSpeech] = None, images: Optional[FakeImages] = None):
    """Object exposing the slice of ``AsyncOpenAI`` the extraction client uses."""
    return SimpleNamespace(
        chat=SimpleNamespace(completions=FakeCompletions(list(responses))),
        audio=SimpleNamespace(speech=speech or FakeSpeech()),
        images=images or FakeImages(),
    )


def json_response(**overrides: Any) -> SimpleNamespace:
    return chat_response(json.dumps(raw_report(**overrides)))
