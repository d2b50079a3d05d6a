from __future__ import annotations

import asyncio
import base64
import itertools
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from finanalyzer.domain.errors import (
    EnrichmentFailed,
    ExtractionRejected,
    ExtractionUnavailable,
    SchemaIncomplete,
)
from finanalyzer.infrastructure.llm.gemini_client import (
    ExtractionClient,
    NO_MARKET_CONTEXT,
    build_extraction_messages,
    normalize_payload,
)

from factories import (
    PDF_BYTES,
    FakeImages,
    FakeSpeech,
    chat_response,
    fake_openai,
    json_response,
    make_report,
    raw_report,
)

_REQUEST = httpx.Request("POST", "https://api.poe.com/v1/chat/completions")


def _client(fake, **kwargs):
    counter = itertools.count(1)
    return ExtractionClient(
        None,
        "gemini-2.5-pro",
        client=fake,
        id_factory=lambda: f"id-{next(counter)}",
        clock=lambda: 1_700_000_000_000,
        **kwargs,
    )


def test_requires_api_key_without_injected_client():
    with pytest.raises(ValueError):
        ExtractionClient(None, "gemini-2.5-pro")


def test_extract_returns_validated_report_with_fresh_identity():
    fake = fake_openai(json_response(), json_response())
    client = _client(fake)
    first = asyncio.run(client.extract(PDF_BYTES, filename="acme-q3.pdf"))
    second = asyncio.run(client.extract(PDF_BYTES, filename="acme-q3.pdf"))

    assert first.id == "id-1"
    assert second.id == "id-2"
    assert first.timestamp == 1_700_000_000_000
    assert first.ticker == "ACME"
    assert first.revenue == 1000.0

    call = fake.chat.completions.calls[0]
    assert call["model"] == "gemini-2.5-pro"
    assert call["response_format"]["type"] == "json_schema"
    assert call["extra_body"] == {"thinking_budget": 8192}
    assert call["temperature"] == 0.1


def test_extract_accepts_fenced_json():
    content = "```json\n" + json.dumps(raw_report()) + "\n```"
    client = _client(fake_openai(chat_response(content)))
    assert asyncio.run(client.extract(PDF_BYTES)).company_name == "Acme Corp"


def test_extract_rejects_non_pdf_without_calling_model():
    fake = fake_openai()
    with pytest.raises(ExtractionRejected):
        asyncio.run(_client(fake).extract(b"hello world"))
    assert fake.chat.completions.calls == []


def test_extract_rejects_empty_or_garbled_response():
    with pytest.raises(ExtractionRejected):
        asyncio.run(_client(fake_openai(chat_response(""))).extract(PDF_BYTES))
    with pytest.raises(ExtractionRejected):
        asyncio.run(_client(fake_openai(chat_response("I cannot read this file."))).extract(PDF_BYTES))


def test_extract_propagates_schema_errors():
    with pytest.raises(SchemaIncomplete):
        asyncio.run(_client(fake_openai(json_response(revenue=None))).extract(PDF_BYTES))


def test_connection_errors_map_to_unavailable():
    error = openai.APIConnectionError(request=_REQUEST)
    with pytest.raises(ExtractionUnavailable):
        asyncio.run(_client(fake_openai(error)).extract(PDF_BYTES))


def test_timeouts_map_to_unavailable():
    error = httpx.ReadTimeout("timed out", request=_REQUEST)
    with pytest.raises(ExtractionUnavailable):
        asyncio.run(_client(fake_openai(error)).extract(PDF_BYTES))


def test_bad_request_maps_to_rejected():
    response = httpx.Response(400, request=_REQUEST)
    error = openai.BadRequestError("unsupported file", response=response, body=None)
    with pytest.raises(ExtractionRejected):
        asyncio.run(_client(fake_openai(error)).extract(PDF_BYTES))


def test_server_error_maps_to_unavailable():
    response = httpx.Response(503, request=_REQUEST)
    error = openai.InternalServerError("overloaded", response=response, body=None)
    with pytest.raises(ExtractionUnavailable):
        asyncio.run(_client(fake_openai(error)).extract(PDF_BYTES))


def test_normalize_payload_fills_defaults():
    payload = raw_report(reportType="", netMargin=None)
    del payload["managementCommentary"]
    normalized = normalize_payload(payload)
    assert normalized["reportType"] == "Other"
    assert normalized["managementCommentary"] == ""
    assert abs(normalized["netMargin"] - 12.0) < 1e-9
    assert payload["reportType"] == ""


def test_extraction_messages_inline_the_pdf():
    messages = build_extraction_messages(PDF_BYTES, "acme.pdf")
    file_part = messages[1]["content"][0]
    assert file_part["type"] == "file"
    assert file_part["file"]["filename"] == "acme.pdf"
    assert file_part["file"]["file_data"].startswith("data:application/pdf;base64,")


def test_market_context_collects_sources():
    annotation = SimpleNamespace(
        type="url_citation",
        url_citation=SimpleNamespace(url="https://news.test/acme", title="Acme beats"),
    )
    content = "Shares rose 6% after the print. See [Analyst note](https://notes.test/acme)."
    client = _client(fake_openai(chat_response(content, annotations=[annotation])))
    market = asyncio.run(client.market_context("ACME", "Acme Corp"))
    assert market.summary.startswith("Shares rose")
    assert [i.uri for i in market.insights] == ["https://news.test/acme", "https://notes.test/acme"]
    assert market.timestamp == 1_700_000_000_000


def test_market_context_defaults_summary_when_empty():
    client = _client(fake_openai(chat_response("")))
    assert asyncio.run(client.market_context("ACME", "Acme Corp")).summary == NO_MARKET_CONTEXT


def test_market_context_failure_is_enrichment_failed():
    client = _client(fake_openai(openai.APIConnectionError(request=_REQUEST)))
    with pytest.raises(EnrichmentFailed) as excinfo:
        asyncio.run(client.market_context("ACME", "Acme Corp"))
    assert excinfo.value.capability == "market_context"


def test_audio_briefing_encodes_pcm():
    speech = FakeSpeech(content=b"\x10\x00\x20\x00")
    client = _client(fake_openai(speech=speech), tts_voice="verse")
    briefing = asyncio.run(client.audio_briefing(make_report()))
    assert base64.b64decode(briefing.audio) == b"\x10\x00\x20\x00"
    assert briefing.sample_rate == 24000
    assert "Acme Corp" in briefing.summary
    assert speech.calls[0]["voice"] == "verse"
    assert speech.calls[0]["response_format"] == "pcm"


def test_audio_briefing_without_audio_fails():
    client = _client(fake_openai(speech=FakeSpeech(content=b"")))
    with pytest.raises(EnrichmentFailed):
        asyncio.run(client.audio_briefing(make_report()))


def test_visualize_guidance_uses_aspect_ratio():
    images = FakeImages()
    client = _client(fake_openai(images=images))
    visual = asyncio.run(client.visualize_guidance(make_report(), aspect_ratio="1:1"))
    assert visual.image == "aW1hZ2U="
    assert images.calls[0]["size"] == "1024x1024"


def test_visualize_guidance_rejects_unknown_ratio():
    with pytest.raises(EnrichmentFailed):
        asyncio.run(_client(fake_openai()).visualize_guidance(make_report(), aspect_ratio="4:3"))
