"""Speech recogniser abstractions."""

from __future__ import annotations

import abc


class RecognitionError(RuntimeError):
    """Raised when the recogniser cannot start or fails mid-stream."""


class SpeechRecognizer(abc.ABC):
    """Incremental recogniser fed with 16-bit mono PCM.

    ``accept`` returns the best full hypothesis for everything heard so far;
    ``finish`` flushes the recogniser and returns the final text.
    """

    @abc.abstractmethod
    def begin(self, language: str, sample_rate: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def accept(self, pcm16: bytes) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def finish(self) -> str:
        raise NotImplementedError

    def close(self) -> None:
        """Release recogniser resources."""


__all__ = ["RecognitionError", "SpeechRecognizer"]
