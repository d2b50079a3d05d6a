"""Helpers to scrub Poe/Gemini planning chatter and recover JSON from model outputs."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Tuple

_MARKDOWN_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")


def clean_llm_output(text: str) -> str:
    """Remove 'Thinking.../Planning' scaffolding and leading quotes."""
    if not text:
        return ""
    cleaned = str(text).strip()
    cleaned = re.sub(r"(?is)^\s*\*?(?:Thinking|Planning)[^.]*\*?.*?(?:\n{2,}|$)", "", cleaned)
    cleaned = re.sub(r"(?im)^>.*\n", "", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Parse model output into a JSON object with lightweight cleanup.

    Tries the raw text, then a fenced ```json block, then the outermost brace
    span. Raises ``ValueError`` when none of them decode to an object.
    """
    text = clean_llm_output(raw) if raw else ""
    candidates = [text]
    fenced = _strip_code_fences(text)
    if fenced != text:
        candidates.append(fenced)
    braced = _extract_braced_block(text)
    if braced not in candidates:
        candidates.append(braced)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
            if isinstance(parsed, str):
                parsed = json.loads(parsed)
        except (TypeError, ValueError):
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("Unable to parse a JSON object from the model response.")


def extract_markdown_links(text: str) -> List[Tuple[str, str]]:
    """Return ``(title, url)`` pairs for inline Markdown links, de-duplicated by URL."""
    seen = set()
    links: List[Tuple[str, str]] = []
    for title, url in _MARKDOWN_LINK.findall(text or ""):
        if url in seen:
            continue
        seen.add(url)
        links.append((title.strip(), url))
    return links


def _strip_code_fences(text: str) -> str:
    match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if match:
        return match.group(1)
    return text.strip()


def _extract_braced_block(text: str) -> str:
    stripped = text.strip()
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end != -1 and end > start:
        return stripped[start : end + 1]
    return stripped
