"""Convenience re-exports for ingest nodes."""
from __future__ import annotations

from . import document, extract, market_context, register

__all__ = [
    "document",
    "extract",
    "market_context",
    "register",
]
