"""Data models used by voxnote."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class AudioBuffer:
    """A chunk of float32 PCM samples shaped ``(frames, channels)``."""

    samples: np.ndarray
    sample_rate: int
    channels: int
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        samples = np.asarray(self.samples, dtype=np.float32)
        if samples.ndim == 1:
            samples = samples.reshape(-1, 1)
        if samples.flags.writeable:
            samples = samples.copy()
            samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / float(self.sample_rate)


class TranscriptState(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str = ""
    is_final: bool = False


class SessionStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    SUMMARIZING = "summarizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class SummaryFailure(str, Enum):
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


class FailureKind(str, Enum):
    DEVICE_UNAVAILABLE = "device_unavailable"
    RECOGNITION_FAILED = "recognition_failed"
    STORAGE_ERROR = "storage_error"
    INTERNAL_ERROR = "internal_error"


class Note(BaseModel):
    id: str
    timestamp: float
    audio_path: Path
    transcript: str = ""
    summary: Optional[str] = None
    language: Optional[str] = None


class SummaryResult(BaseModel):
    """Either a structured summary or the reason summarisation failed."""

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    failure: Optional[SummaryFailure] = None
    detail: str = ""

    @classmethod
    def structured(cls, text: str) -> "SummaryResult":
        return cls(text=text)

    @classmethod
    def failed(cls, kind: SummaryFailure, detail: str = "") -> "SummaryResult":
        return cls(failure=kind, detail=detail)

    @property
    def ok(self) -> bool:
        return self.failure is None and self.text is not None


class SessionFailure(BaseModel):
    kind: FailureKind
    message: str


@dataclass
class RecordingSession:
    id: str
    started_at: float
    language: str
    status: SessionStatus = SessionStatus.IDLE
    audio_path: Optional[Path] = None
    ended_at: Optional[float] = None


@dataclass
class SessionOutcome:
    """Terminal result of a recording session as reported to the caller."""

    session: RecordingSession
    transcript: TranscriptState = field(default_factory=lambda: TranscriptState(is_final=True))
    note: Optional[Note] = None
    summary: Optional[SummaryResult] = None
    recognition_error: Optional[str] = None
    failure: Optional[SessionFailure] = None
    dropped_buffers: int = 0

    @property
    def audio_path(self) -> Optional[Path]:
        if self.note is not None:
            return self.note.audio_path
        return self.session.audio_path


__all__ = [
    "AudioBuffer",
    "FailureKind",
    "Note",
    "RecordingSession",
    "SessionFailure",
    "SessionOutcome",
    "SessionStatus",
    "SummaryFailure",
    "SummaryResult",
    "TranscriptState",
]
