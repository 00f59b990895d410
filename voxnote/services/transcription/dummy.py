"""Dummy recogniser for testing or offline usage."""

from __future__ import annotations

from .base import RecognitionError, SpeechRecognizer


class DummyRecognizer(SpeechRecognizer):
    """Describes how much audio it heard instead of recognising speech."""

    def __init__(self) -> None:
        self._language = ""
        self._sample_rate = 0
        self._bytes = 0

    def begin(self, language: str, sample_rate: int) -> None:
        if sample_rate <= 0:
            raise RecognitionError("sample_rate must be positive")
        self._language = language
        self._sample_rate = sample_rate
        self._bytes = 0

    def _describe(self) -> str:
        seconds = self._bytes / 2.0 / self._sample_rate if self._sample_rate else 0.0
        return (
            f"Dummy transcript of {seconds:.1f}s of {self._language} audio. "
            "Replace with a real recogniser backend."
        )

    def accept(self, pcm16: bytes) -> str:
        self._bytes += len(pcm16)
        return self._describe()

    def finish(self) -> str:
        if not self._bytes:
            return ""
        return self._describe()


__all__ = ["DummyRecognizer"]
