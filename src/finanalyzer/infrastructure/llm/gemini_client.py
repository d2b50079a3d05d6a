"""LLM gateway for Gemini access via an OpenAI-compatible endpoint (Poe by default).

The client is the only component allowed to mint report identity. Every
successful ``extract`` yields a fresh id, even for identical input bytes.
Optional capabilities (market context, audio, image, live session) fail with
``EnrichmentFailed`` and never touch an existing report.
"""
from __future__ import annotations

import base64
import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from finanalyzer.domain.errors import (
    EnrichmentFailed,
    ExtractionError,
    ExtractionRejected,
    ExtractionUnavailable,
)
from finanalyzer.domain.models.report import (
    AudioBriefing,
    FinancialReport,
    MarketContext,
    MarketInsight,
    VisualizedGuidance,
)
from finanalyzer.domain.schema import REPORT_JSON_SCHEMA, validate
from finanalyzer.domain.services.metrics import format_currency, growth, sentiment_label
from finanalyzer.infrastructure.llm.live_session import LiveAnalystCallbacks, LiveAnalystSession
from finanalyzer.infrastructure.llm.llm_clean import (
    clean_llm_output,
    extract_markdown_links,
    parse_json_object,
)
from finanalyzer.settings.config import Config

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.poe.com/v1"
PDF_MEDIA_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"

SYSTEM_PROMPT = (
    "You are a CFA-level financial analyst extracting GAAP figures from earnings disclosures. "
    "Return a single JSON object that follows the provided schema, without commentary."
)
EXTRACTION_INSTRUCTION = (
    "Conduct a rigorous financial analysis of this earnings report. Extract all numerical KPIs "
    "with 100% accuracy using GAAP figures. Use your thinking capacity to ensure year-over-year "
    "calculations are correct: prior-period values must refer to the same period one year earlier. "
    "Report margins as percentages on a 0-100 scale. Determine a 'sentimentScore' (0-100) based on "
    "management's verbal confidence and tone in the release or call transcript."
)
NO_MARKET_CONTEXT = "No market context available at this time."
IMAGE_SIZES = {"16:9": "1536x1024", "1:1": "1024x1024", "9:16": "1024x1536"}
TTS_SAMPLE_RATE = 24000


class ExtractionClient:
    """Async adapter over the multimodal model and its optional capabilities."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        proxy_url: Optional[str] = None,
        timeout: float = 180.0,
        thinking_budget: Optional[int] = 8192,
        temperature: float = 0.1,
        market_thinking_budget: Optional[int] = 2048,
        tts_model: str = "gpt-4o-mini-tts",
        tts_voice: str = "alloy",
        image_model: str = "gpt-image-1",
        live_model: str = "gpt-realtime",
        client: Any = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._http_client: Optional[httpx.AsyncClient] = None
        if client is None:
            if not api_key:
                raise ValueError("POE_API_KEY is required to contact Gemini endpoints.")
            http_client_kwargs: Dict[str, Any] = {
                "timeout": httpx.Timeout(timeout, connect=10.0),
                "verify": True,
            }
            if proxy_url:
                http_client_kwargs["proxy"] = proxy_url
                http_client_kwargs["verify"] = False
            self._http_client = httpx.AsyncClient(**http_client_kwargs)
            client = AsyncOpenAI(api_key=api_key, base_url=base_url, http_client=self._http_client)
        self._client = client
        self._model = model
        self._thinking_budget = thinking_budget
        self._temperature = temperature
        self._market_thinking_budget = market_thinking_budget
        self._tts_model = tts_model
        self._tts_voice = tts_voice
        self._image_model = image_model
        self._live_model = live_model
        self._new_id = id_factory
        self._now_ms = clock

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> "ExtractionClient":
        kwargs: Dict[str, Any] = dict(
            base_url=config.base_url,
            proxy_url=config.proxy_url,
            thinking_budget=config.thinking_budget,
            temperature=config.temperature,
            market_thinking_budget=config.market_thinking_budget,
            tts_model=config.tts_model,
            tts_voice=config.tts_voice,
            image_model=config.image_model,
            live_model=config.live_model,
        )
        kwargs.update(overrides)
        return cls(config.api_key, config.gemini_model, **kwargs)

    # ----------
    # Extraction
    # ----------
    async def extract(self, pdf_bytes: bytes, *, filename: str = "report.pdf") -> FinancialReport:
        """Extract a validated report from PDF bytes.

        Raises ``ExtractionRejected`` / ``ExtractionUnavailable`` for upstream
        problems and propagates ``SchemaError`` from validation.
        """
        if not pdf_bytes or not bytes(pdf_bytes).lstrip()[:5] == PDF_MAGIC:
            raise ExtractionRejected("Input is not a PDF document.")

        extra_body: Dict[str, Any] = {}
        if self._thinking_budget is not None:
            extra_body["thinking_budget"] = self._thinking_budget

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                temperature=self._temperature,
                messages=build_extraction_messages(pdf_bytes, filename),
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "financial_report", "schema": REPORT_JSON_SCHEMA},
                },
                extra_body=extra_body or None,
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise _translate_error(exc) from exc

        content = _first_content(response)
        if not content:
            raise ExtractionRejected("Model returned an empty response; the document may not be an earnings filing.")
        try:
            payload = parse_json_object(content)
        except ValueError as exc:
            raise ExtractionRejected(f"Model response is not a JSON report: {exc}") from exc

        result = validate(normalize_payload(payload))
        for warning in result.warnings:
            logger.warning("Extraction normalized %s: %s", filename, warning)
        report = result.unwrap()
        report = replace(report, id=self._new_id(), timestamp=self._now_ms())
        logger.info("Extracted %s (%s) as report %s", report.label, report.report_type, report.id)
        return report

    # ---------------------
    # Optional capabilities
    # ---------------------
    async def market_context(self, ticker: str, company: str) -> MarketContext:
        """Grounded-search market scan for the company since its last earnings report."""
        prompt = (
            f"Perform a comprehensive market scan for {company} ({ticker}) focusing on developments "
            "since their last earnings report. Include current stock price trends, major news, and "
            "analyst upgrades/downgrades. Cite sources as Markdown links."
        )
        extra_body: Dict[str, Any] = {"web_search": True}
        if self._market_thinking_budget is not None:
            extra_body["thinking_budget"] = self._market_thinking_budget
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                extra_body=extra_body,
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise EnrichmentFailed("market_context", str(exc)) from exc

        summary = clean_llm_output(_first_content(response)) or NO_MARKET_CONTEXT
        insights = _grounding_insights(response, summary)
        return MarketContext(summary=summary, insights=tuple(insights), timestamp=self._now_ms())

    async def audio_briefing(self, report: FinancialReport) -> AudioBriefing:
        """Narrate a short briefing of the report as 24 kHz PCM (base64)."""
        script = briefing_script(report)
        try:
            response = await self._client.audio.speech.create(
                model=self._tts_model,
                voice=self._tts_voice,
                input=script,
                response_format="pcm",
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise EnrichmentFailed("audio_briefing", str(exc)) from exc
        audio = getattr(response, "content", None)
        if not audio:
            raise EnrichmentFailed("audio_briefing", "speech endpoint returned no audio")
        return AudioBriefing(
            audio=base64.b64encode(audio).decode("ascii"),
            summary=script,
            sample_rate=TTS_SAMPLE_RATE,
            timestamp=self._now_ms(),
        )

    async def visualize_guidance(self, report: FinancialReport, *, aspect_ratio: str = "16:9") -> VisualizedGuidance:
        """Generate an infographic of management guidance for the report."""
        if aspect_ratio not in IMAGE_SIZES:
            raise EnrichmentFailed("visualized_guidance", f"unsupported aspect ratio {aspect_ratio}")
        prompt = guidance_prompt(report)
        try:
            response = await self._client.images.generate(
                model=self._image_model,
                prompt=prompt,
                size=IMAGE_SIZES[aspect_ratio],
                n=1,
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise EnrichmentFailed("visualized_guidance", str(exc)) from exc
        data = getattr(response, "data", None) or []
        image = getattr(data[0], "b64_json", None) if data else None
        if not image:
            raise EnrichmentFailed("visualized_guidance", "image endpoint returned no image data")
        return VisualizedGuidance(image=image, mime_type="image/png", prompt=prompt, timestamp=self._now_ms())

    def live_analyst(self, report: FinancialReport, callbacks: LiveAnalystCallbacks) -> LiveAnalystSession:
        """Bidirectional audio session bound to ``report``; use as ``async with``."""
        return LiveAnalystSession(self._client, self._live_model, report, callbacks, voice=self._tts_voice)

    async def aclose(self) -> None:
        """Release the underlying HTTP session."""
        if self._http_client is not None:
            await self._http_client.aclose()


def build_extraction_messages(pdf_bytes: bytes, filename: str) -> List[Dict[str, Any]]:
    encoded = base64.b64encode(pdf_bytes).decode("ascii")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {
                    "type": "file",
                    "file": {"filename": filename, "file_data": f"data:{PDF_MEDIA_TYPE};base64,{encoded}"},
                },
                {"type": "text", "text": EXTRACTION_INSTRUCTION},
            ],
        },
    ]


def normalize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fill fields the extractor commonly omits before schema validation."""
    normalized = dict(payload)
    if not normalized.get("reportType"):
        normalized["reportType"] = "Other"
    if normalized.get("managementCommentary") is None:
        normalized["managementCommentary"] = ""
    revenue = normalized.get("revenue")
    net_income = normalized.get("netIncome")
    if (
        normalized.get("netMargin") is None
        and isinstance(revenue, (int, float))
        and isinstance(net_income, (int, float))
        and not isinstance(revenue, bool)
        and revenue
    ):
        normalized["netMargin"] = net_income / revenue * 100
    return normalized


def briefing_script(report: FinancialReport) -> str:
    revenue_growth = growth(report.revenue, report.revenue_prior)
    parts = [
        f"{report.company_name} {report.report_period} {report.report_year} briefing.",
        f"Revenue was {format_currency(report.revenue, compact=True)}, {revenue_growth:+.1f} percent year over year.",
        f"Net income came in at {format_currency(report.net_income, compact=True)} "
        f"with diluted EPS of {format_currency(report.eps)}.",
        f"Management tone reads {sentiment_label(report.sentiment_score)}.",
    ]
    if report.highlights:
        parts.append(f"Key highlight: {report.highlights[0]}")
    return " ".join(parts)


def guidance_prompt(report: FinancialReport) -> str:
    highlights = "; ".join(report.highlights[:3]) or "no highlights provided"
    return (
        f"A clean financial infographic for {report.company_name} ({report.ticker}) "
        f"{report.report_period} {report.report_year}: revenue {format_currency(report.revenue, compact=True)}, "
        f"gross margin {report.gross_margin:.1f}%, outlook: {highlights}. Minimal corporate style, no extra text."
    )


def _first_content(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    return choices[0].message.content or ""


def _grounding_insights(response: Any, summary: str) -> List[MarketInsight]:
    insights: List[MarketInsight] = []
    seen = set()
    choices = getattr(response, "choices", None) or []
    annotations = getattr(choices[0].message, "annotations", None) if choices else None
    for annotation in annotations or []:
        citation = getattr(annotation, "url_citation", None)
        uri = getattr(citation, "url", None) if citation is not None else None
        if not uri or uri in seen:
            continue
        seen.add(uri)
        insights.append(MarketInsight(title=getattr(citation, "title", None) or "External Source", uri=uri))
    for title, uri in extract_markdown_links(summary):
        if uri not in seen:
            seen.add(uri)
            insights.append(MarketInsight(title=title or "External Source", uri=uri))
    return insights


def _translate_error(exc: Exception) -> ExtractionError:
    """Map transport/API exceptions onto the tagged extraction errors."""
    if isinstance(exc, (openai.APIConnectionError, httpx.HTTPError)):
        return ExtractionUnavailable(f"Extraction service unreachable: {exc}")
    if isinstance(
        exc,
        (
            openai.AuthenticationError,
            openai.PermissionDeniedError,
            openai.RateLimitError,
            openai.NotFoundError,
            openai.InternalServerError,
        ),
    ):
        return ExtractionUnavailable(f"Extraction service unavailable: {exc}")
    if isinstance(exc, (openai.BadRequestError, openai.UnprocessableEntityError)):
        return ExtractionRejected(f"Extraction service rejected the document: {exc}")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code >= 500:
            return ExtractionUnavailable(f"Extraction service error {exc.status_code}: {exc}")
        return ExtractionRejected(f"Extraction service rejected the document ({exc.status_code}): {exc}")
    return ExtractionUnavailable(f"Extraction failed: {exc}")
