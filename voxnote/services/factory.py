"""Factories for runtime service selection."""

from __future__ import annotations

from typing import Optional

from ..config import Settings, get_settings
from .summarization.client import SummarizationClient
from .transcription.base import SpeechRecognizer
from .transcription.dummy import DummyRecognizer


class ServiceConfigurationError(ValueError):
    """Raised when an unknown backend is requested."""


def _normalise(name: Optional[str]) -> str:
    if not name:
        return "none"
    return name.strip().lower()


def resolve_recognizer_backend(name: Optional[str], settings: Optional[Settings] = None) -> SpeechRecognizer:
    settings = settings or get_settings()
    backend = _normalise(name)
    if backend == "dummy":
        return DummyRecognizer()
    if backend == "vosk":
        from .transcription.vosk_backend import VoskRecognizer

        return VoskRecognizer(model_dir=settings.vosk_model_dir)
    raise ServiceConfigurationError(f"Unknown recognizer backend: {name}")


def resolve_summarizer(enabled: bool, settings: Optional[Settings] = None) -> Optional[SummarizationClient]:
    settings = settings or get_settings()
    if not enabled:
        return None
    return SummarizationClient(
        base_url=settings.summary_url,
        model=settings.summary_model,
        timeout=settings.summary_timeout,
        prompt_template=settings.summary_prompt,
    )


__all__ = [
    "ServiceConfigurationError",
    "resolve_recognizer_backend",
    "resolve_summarizer",
]
