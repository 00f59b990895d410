"""Offline streaming recogniser powered by Vosk (Kaldi)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

from ...logging import get_logger
from .base import RecognitionError, SpeechRecognizer

LOGGER = get_logger(__name__)


class VoskRecognizer(SpeechRecognizer):
    """Wrap ``vosk.KaldiRecognizer`` and keep a running transcript.

    Models are looked up in ``model_dir`` as ``<model_dir>/<language>`` (for
    example ``models/en-US``); without a directory Vosk resolves the language
    code itself and downloads the small model on first use.
    """

    def __init__(self, model_dir: Optional[Path] = None) -> None:
        try:
            import vosk  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RecognitionError("vosk package is required for VoskRecognizer") from exc

        self._vosk = vosk
        self._vosk.SetLogLevel(-1)
        self.model_dir = Path(model_dir) if model_dir else None
        self._models: Dict[str, object] = {}
        self._recognizer = None
        self._segments: List[str] = []
        self._partial = ""

    def _resolve_model_path(self, language: str) -> Optional[Path]:
        if self.model_dir is None:
            return None
        for candidate in (self.model_dir / language, self.model_dir / language.lower()):
            if candidate.is_dir():
                return candidate
        if (self.model_dir / "conf").is_dir():
            return self.model_dir
        raise RecognitionError(f"No Vosk model for {language} in {self.model_dir}")

    def _load_model(self, language: str):
        model = self._models.get(language)
        if model is not None:
            return model
        path = self._resolve_model_path(language)
        try:
            if path is not None:
                LOGGER.info("Loading Vosk model from %s", path)
                model = self._vosk.Model(str(path))
            else:
                LOGGER.info("Loading Vosk model for %s", language)
                model = self._vosk.Model(lang=language.lower())
        except Exception as exc:
            raise RecognitionError(f"Speech recognition is not available for {language}: {exc}") from exc
        self._models[language] = model
        return model

    def begin(self, language: str, sample_rate: int) -> None:
        model = self._load_model(language)
        try:
            self._recognizer = self._vosk.KaldiRecognizer(model, float(sample_rate))
        except Exception as exc:
            raise RecognitionError(f"Failed to create Vosk recogniser: {exc}") from exc
        self._segments = []
        self._partial = ""

    def _compose(self) -> str:
        parts = [segment for segment in self._segments if segment]
        if self._partial:
            parts.append(self._partial)
        return " ".join(parts)

    def accept(self, pcm16: bytes) -> str:
        if self._recognizer is None:
            raise RecognitionError("Recogniser has not been started")
        if self._recognizer.AcceptWaveform(pcm16):
            segment = json.loads(self._recognizer.Result()).get("text", "").strip()
            if segment:
                self._segments.append(segment)
            self._partial = ""
        else:
            self._partial = json.loads(self._recognizer.PartialResult()).get("partial", "").strip()
        return self._compose()

    def finish(self) -> str:
        if self._recognizer is None:
            return ""
        segment = json.loads(self._recognizer.FinalResult()).get("text", "").strip()
        self._partial = ""
        if segment:
            self._segments.append(segment)
        return self._compose()

    def close(self) -> None:
        self._recognizer = None


__all__ = ["VoskRecognizer"]
