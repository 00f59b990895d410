"""Incremental WAV writer for session audio."""

from __future__ import annotations

import wave
from pathlib import Path
from typing import Optional

import numpy as np

from ...data.models import AudioBuffer
from ...utils.audio import to_pcm16


class SessionAudioWriter:
    """Append :class:`AudioBuffer` chunks to a 16-bit PCM wave file.

    The file is opened lazily and takes the sample rate and channel count of
    the first buffer, so it matches whatever format the device negotiated.
    Closing a writer that never received audio leaves a valid empty file in
    the fallback format.
    """

    def __init__(self, path: Path, sample_rate: int, channels: int) -> None:
        self.path = Path(path)
        self.sample_rate = sample_rate
        self.channels = channels
        self._wave: Optional[wave.Wave_write] = None
        self._frames_written = 0
        self._closed = False

    def _open(self, sample_rate: int, channels: int) -> wave.Wave_write:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.sample_rate = sample_rate
        self.channels = channels
        handle = wave.open(str(self.path), "wb")
        handle.setnchannels(channels)
        handle.setsampwidth(2)
        handle.setframerate(sample_rate)
        self._wave = handle
        return handle

    def append(self, buffer: AudioBuffer) -> None:
        if self._closed:
            raise ValueError(f"Writer for {self.path} is closed")
        handle = self._wave or self._open(buffer.sample_rate, buffer.channels)
        if buffer.sample_rate != self.sample_rate:
            raise ValueError(
                f"Sample rate changed mid-recording ({self.sample_rate} -> {buffer.sample_rate})"
            )
        handle.writeframes(to_pcm16(self._match_channels(buffer.samples)).tobytes())
        self._frames_written += buffer.frames

    def _match_channels(self, samples: np.ndarray) -> np.ndarray:
        if samples.shape[1] == self.channels:
            return samples
        if samples.shape[1] == 1:
            return np.repeat(samples, self.channels, axis=1)
        if self.channels == 1:
            return samples.mean(axis=1, keepdims=True)
        raise ValueError("Channel mismatch when writing audio")

    @property
    def duration_seconds(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self._frames_written / float(self.sample_rate)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        handle = self._wave or self._open(self.sample_rate, self.channels)
        handle.close()


__all__ = ["SessionAudioWriter"]
