"""Transcription services."""

from .base import RecognitionError, SpeechRecognizer
from .dummy import DummyRecognizer
from .streaming import StreamingTranscriber

__all__ = ["DummyRecognizer", "RecognitionError", "SpeechRecognizer", "StreamingTranscriber"]
