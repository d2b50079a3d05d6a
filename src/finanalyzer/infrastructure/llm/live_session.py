"""Realtime "live analyst" voice session bound to a single report.

Microphone input arrives as 16 kHz mono PCM16 and is resampled to the
transport rate before upload. Model speech is delivered to ``on_audio`` as
24 kHz mono PCM16 chunks and also buffered until the consumer takes it; an
interruption event (user starts talking) drops everything still pending.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass, field
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

import numpy as np

from finanalyzer.domain.errors import EnrichmentFailed
from finanalyzer.domain.models.report import FinancialReport

logger = logging.getLogger(__name__)

INPUT_SAMPLE_RATE = 16000
OUTPUT_SAMPLE_RATE = 24000
TRANSPORT_SAMPLE_RATE = 24000
# 30 seconds of 24 kHz mono PCM16.
MAX_PENDING_BYTES = OUTPUT_SAMPLE_RATE * 2 * 30

AUDIO_DELTA_EVENTS = ("response.output_audio.delta", "response.audio.delta")
INTERRUPT_EVENTS = ("input_audio_buffer.speech_started",)


def _noop(*_: Any) -> None:
    return None


@dataclass
class LiveAnalystCallbacks:
    on_open: Callable[[], None] = _noop
    on_audio: Callable[[bytes], None] = _noop
    on_interrupted: Callable[[], None] = _noop
    on_error: Callable[[Exception], None] = _noop
    on_close: Callable[[], None] = _noop


def resample_pcm16(chunk: bytes, src_rate: int, dst_rate: int) -> bytes:
    """Linear-interpolation resample of little-endian mono PCM16."""
    if len(chunk) % 2:
        raise ValueError("PCM16 payload must contain an even number of bytes.")
    if src_rate == dst_rate or not chunk:
        return bytes(chunk)
    samples = np.frombuffer(chunk, dtype="<i2").astype(np.float64)
    target_len = max(1, int(round(len(samples) * dst_rate / src_rate)))
    positions = np.linspace(0, len(samples) - 1, target_len)
    resampled = np.interp(positions, np.arange(len(samples)), samples)
    return np.clip(np.round(resampled), -32768, 32767).astype("<i2").tobytes()


def analyst_instructions(report: FinancialReport) -> str:
    facts = {
        key: value
        for key, value in report.to_dict().items()
        if key not in ("audioBriefing", "visualizedGuidance", "marketContext")
    }
    return (
        "You are a senior equity analyst discussing a single earnings report with an investor. "
        "Answer briefly and only from these extracted facts; say so when a figure is unavailable.\n"
        f"{json.dumps(facts, ensure_ascii=False, default=str)}"
    )


@dataclass
class _PendingOutput:
    """Bounded FIFO of output chunks; the oldest audio is dropped past ``limit`` bytes."""

    limit: int = MAX_PENDING_BYTES
    chunks: Deque[bytes] = field(default_factory=deque)
    size: int = 0

    def push(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self.size += len(chunk)
        while self.size > self.limit and len(self.chunks) > 1:
            self.size -= len(self.chunks.popleft())

    def take(self) -> bytes:
        data = b"".join(self.chunks)
        self.clear()
        return data

    def clear(self) -> int:
        dropped = len(self.chunks)
        self.chunks.clear()
        self.size = 0
        return dropped


class LiveAnalystSession:
    """Async context manager wrapping a realtime connection."""

    def __init__(
        self,
        client: Any,
        model: str,
        report: FinancialReport,
        callbacks: LiveAnalystCallbacks,
        *,
        voice: str = "alloy",
        connect: Optional[Callable[[], Any]] = None,
        max_pending_bytes: int = MAX_PENDING_BYTES,
    ) -> None:
        self._client = client
        self._model = model
        self.report = report
        self._callbacks = callbacks
        self._voice = voice
        self._connect = connect or (lambda: client.realtime.connect(model=model))
        self._manager: Any = None
        self._connection: Any = None
        self._receiver: Optional[asyncio.Task] = None
        self._pending = _PendingOutput(limit=max_pending_bytes)

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def session_config(self) -> Dict[str, Any]:
        return {
            "type": "realtime",
            "instructions": analyst_instructions(self.report),
            "output_modalities": ["audio"],
            "audio": {"output": {"voice": self._voice}},
        }

    async def __aenter__(self) -> "LiveAnalystSession":
        try:
            self._manager = self._connect()
            self._connection = await self._manager.__aenter__()
            await self._connection.session.update(session=self.session_config())
        except Exception as exc:  # pylint: disable=broad-except
            await self._abandon_open()
            error = EnrichmentFailed("live_analyst", f"could not open session: {exc}")
            self._callbacks.on_error(error)
            raise error from exc
        self._callbacks.on_open()
        self._receiver = asyncio.create_task(self._receive())
        return self

    async def _abandon_open(self) -> None:
        manager, entered = self._manager, self._connection is not None
        self._manager = None
        self._connection = None
        if manager is not None and entered:
            try:
                await manager.__aexit__(None, None, None)
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Live analyst cleanup after failed open raised: %s", exc)

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._receiver is not None:
            self._receiver.cancel()
            try:
                await self._receiver
            except asyncio.CancelledError:
                pass
            self._receiver = None
        if self._manager is not None:
            await self._manager.__aexit__(None, None, None)
            self._manager = None
        if self._connection is not None:
            self._connection = None
            self._pending.clear()
            self._callbacks.on_close()

    async def send_pcm(self, chunk: bytes) -> None:
        """Upload a 16 kHz mono PCM16 microphone chunk."""
        if self._connection is None:
            raise EnrichmentFailed("live_analyst", "session is not open")
        payload = resample_pcm16(chunk, INPUT_SAMPLE_RATE, TRANSPORT_SAMPLE_RATE)
        await self._connection.input_audio_buffer.append(audio=base64.b64encode(payload).decode("ascii"))

    def take_output(self) -> bytes:
        """Return and clear 24 kHz PCM16 audio received since the last call."""
        return self._pending.take()

    def handle_event(self, event: Any) -> None:
        event_type = getattr(event, "type", "")
        if event_type in AUDIO_DELTA_EVENTS:
            chunk = base64.b64decode(getattr(event, "delta", "") or "")
            if chunk:
                self._pending.push(chunk)
                self._callbacks.on_audio(chunk)
        elif event_type in INTERRUPT_EVENTS:
            dropped = self._pending.clear()
            logger.debug("Live analyst interrupted; dropped %d pending chunks", dropped)
            self._callbacks.on_interrupted()
        elif event_type == "error":
            detail = getattr(getattr(event, "error", None), "message", None) or "realtime error"
            self._callbacks.on_error(EnrichmentFailed("live_analyst", detail))

    async def _receive(self) -> None:
        try:
            async for event in self._connection:
                self.handle_event(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Live analyst stream ended with error: %s", exc)
            self._callbacks.on_error(EnrichmentFailed("live_analyst", str(exc)))
