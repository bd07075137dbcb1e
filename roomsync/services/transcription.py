# roomsync/services/transcription.py
"""Voice-to-text for message composition.

The adapter is stateless and knows nothing about rooms or stores: it turns a
captured audio segment into text and the caller appends that text to its
draft. Any callable ``backend(audio_bytes)`` returning ``{"text": ...}``, a
list of such dicts, or a plain string can be plugged in.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from roomsync.core.logging import get_logger
from roomsync.core.config import settings

logger = get_logger(__name__)

SpeechBackend = Callable[[bytes], Any]


def append_to_draft(draft: str, text: str) -> str:
    """Append transcribed text to a draft, space-separated when the draft is non-empty."""
    if not text:
        return draft
    return f"{draft} {text}" if draft else text


def extract_text(result: Any) -> str:
    """Normalise a backend result. Empty/absent means no speech detected."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result.strip()
    if isinstance(result, dict):
        return str(result.get("text") or "").strip()
    if isinstance(result, (list, tuple)):
        for item in result:
            text = extract_text(item)
            if text:
                return text
    return ""


class HuggingFaceSpeechBackend:
    """Automatic speech recognition through a ``transformers`` pipeline.

    The model is loaded on first use; importing this module does not need
    ``transformers`` installed.
    """

    def __init__(self, model: Optional[str] = None) -> None:
        self.model = model or settings.TRANSCRIPTION_MODEL
        self._pipeline = None

    def _load(self):
        if self._pipeline is None:
            # Lazy import so the server starts without the speech extra.
            from transformers import pipeline  # type: ignore

            logger.info("Loading speech recognition model %s", self.model)
            self._pipeline = pipeline("automatic-speech-recognition", model=self.model)
        return self._pipeline

    def __call__(self, audio: bytes) -> Any:
        return self._load()(audio)


class TranscriptionAdapter:
    """Turns one bounded audio segment into text.

    Failures never propagate: they are logged as warnings and produce ``""``
    so the rest of the send flow is unaffected.
    """

    def __init__(self, backend: Optional[SpeechBackend] = None, max_audio_bytes: Optional[int] = None) -> None:
        self.backend = backend or HuggingFaceSpeechBackend()
        self.max_audio_bytes = max_audio_bytes or settings.MAX_AUDIO_BYTES

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            return ""
        if len(audio) > self.max_audio_bytes:
            logger.info("Truncating audio segment from %d to %d bytes", len(audio), self.max_audio_bytes)
            audio = audio[: self.max_audio_bytes]

        try:
            # Inference is CPU-bound; keep it off the event loop
            result = await asyncio.to_thread(self.backend, audio)
        except Exception as e:
            logger.warning("Speech recognition failed: %s", e)
            return ""

        text = extract_text(result)
        if not text:
            logger.info("No speech detected")
        return text
