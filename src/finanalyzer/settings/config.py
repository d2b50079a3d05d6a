"""Application-wide configuration defaults and helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Base directory for resolving relative paths.
BASE_DIR = Path.cwd()


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse truthy environment values like '1' or 'true'."""
    if value is None:
        return default
    if not isinstance(value, str):
        value = str(value)
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Safely parse an integer env var, returning the default on failure."""
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _to_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Config:
    """Runtime configuration loaded from environment variables."""

    debug: bool = False
    api_key: Optional[str] = None
    base_url: str = "https://api.poe.com/v1"
    proxy_url: Optional[str] = None
    gemini_model: str = "gemini-2.5-pro"
    thinking_budget: Optional[int] = 8192
    temperature: float = 0.1
    market_thinking_budget: Optional[int] = 2048
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "alloy"
    image_model: str = "gpt-image-1"
    live_model: str = "gpt-realtime"
    library_path: Path = BASE_DIR / "data" / "library.db"
    sqlite_echo: bool = False
    output_dir: Path = BASE_DIR / "exports"

    @classmethod
    def from_env(cls) -> "Config":
        """Build a configuration instance using environment overrides."""
        base = BASE_DIR
        return cls(
            debug=_to_bool(os.getenv("APP_DEBUG")),
            api_key=os.getenv("POE_API_KEY"),
            base_url=os.getenv("POE_BASE_URL", "https://api.poe.com/v1"),
            proxy_url=os.getenv("PROXY_URL"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-pro"),
            thinking_budget=_to_int(os.getenv("POE_THINKING_BUDGET"), default=8192),
            temperature=_to_float(os.getenv("EXTRACTION_TEMPERATURE"), default=0.1),
            market_thinking_budget=_to_int(os.getenv("MARKET_THINKING_BUDGET"), default=2048),
            tts_model=os.getenv("TTS_MODEL", "gpt-4o-mini-tts"),
            tts_voice=os.getenv("TTS_VOICE", "alloy"),
            image_model=os.getenv("IMAGE_MODEL", "gpt-image-1"),
            live_model=os.getenv("LIVE_MODEL", "gpt-realtime"),
            library_path=Path(os.getenv("LIBRARY_PATH", base / "data" / "library.db")),
            sqlite_echo=_to_bool(os.getenv("SQLITE_ECHO")),
            output_dir=Path(os.getenv("OUTPUT_DIR", base / "exports")),
        )

    def ensure_directories(self) -> None:
        """Create directories needed for runtime artifacts."""
        self.library_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)
