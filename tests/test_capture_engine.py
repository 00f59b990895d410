"""Tests for the capture engine using an in-memory audio source."""

from __future__ import annotations

import wave
from typing import List, Optional

import numpy as np
import pytest

from voxnote.core.audio import AudioCaptureEngine, AudioSource, CaptureError, CaptureInfo, DeviceUnavailableError
from voxnote.data.models import AudioBuffer


class FakeSource(AudioSource):
    """Delivers a fixed list of chunks synchronously when opened."""

    def __init__(self, chunks: Optional[List[np.ndarray]] = None, fail: Optional[Exception] = None, rate: Optional[int] = None):
        self.chunks = chunks or []
        self.fail = fail
        self.rate = rate
        self.closed = 0

    def open(self, info, on_buffer, on_error=None):
        if self.fail is not None:
            raise self.fail
        negotiated = CaptureInfo(name="fake", sample_rate=self.rate or info.sample_rate, channels=info.channels)
        for chunk in self.chunks:
            on_buffer(AudioBuffer(chunk, negotiated.sample_rate, negotiated.channels))
        return negotiated

    def close(self):
        self.closed += 1


def _chunk(frames: int = 1600, value: float = 0.25) -> np.ndarray:
    return np.full((frames, 1), value, dtype=np.float32)


def read_wave(path):
    with wave.open(str(path), "rb") as wf:
        frames = wf.readframes(wf.getnframes())
        rate = wf.getframerate()
    return (np.frombuffer(frames, dtype=np.int16).astype(np.float32) / 32767.0).reshape(-1, 1), rate


def test_buffers_reach_consumer_and_file(tmp_path) -> None:
    received: List[AudioBuffer] = []
    engine = AudioCaptureEngine(FakeSource([_chunk(), _chunk()]))

    info = engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", received.append)
    path = engine.stop()

    assert info.sample_rate == 16_000
    assert len(received) == 2
    assert engine.buffers_captured == 2
    assert engine.recorded_seconds == pytest.approx(0.2)
    data, rate = read_wave(path)
    assert rate == 16_000
    assert data.shape == (3200, 1)
    assert np.allclose(data, 0.25, atol=1e-3)
    assert engine.source.closed == 1
    assert not engine.is_active


def test_file_uses_negotiated_rate(tmp_path) -> None:
    engine = AudioCaptureEngine(FakeSource([_chunk(4800)], rate=48_000))

    info = engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)
    path = engine.stop()

    assert info.sample_rate == 48_000
    assert read_wave(path)[1] == 48_000


def test_stop_without_buffers_leaves_empty_wav(tmp_path) -> None:
    engine = AudioCaptureEngine(FakeSource())

    engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)
    data, rate = read_wave(engine.stop())

    assert data.shape == (0, 1)
    assert rate == 16_000


def test_unavailable_device_leaves_no_file(tmp_path) -> None:
    engine = AudioCaptureEngine(FakeSource(fail=DeviceUnavailableError("microphone busy")))

    with pytest.raises(DeviceUnavailableError, match="busy"):
        engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)

    assert not (tmp_path / "a.wav").exists()
    assert not engine.is_active


def test_unexpected_open_error_is_reported_as_unavailable(tmp_path) -> None:
    engine = AudioCaptureEngine(FakeSource(fail=OSError("no such device")))

    with pytest.raises(DeviceUnavailableError):
        engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)


def test_start_twice_and_stop_when_idle_raise(tmp_path) -> None:
    engine = AudioCaptureEngine(FakeSource())
    with pytest.raises(CaptureError):
        engine.stop()

    engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)
    with pytest.raises(CaptureError, match="already running"):
        engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "b.wav", lambda b: None)
    engine.stop()


def test_m4a_without_ffmpeg_keeps_wav(tmp_path) -> None:
    engine = AudioCaptureEngine(
        FakeSource([_chunk()]),
        audio_format="m4a",
        ffmpeg_binary=str(tmp_path / "no-such-ffmpeg"),
    )

    engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)
    path = engine.stop()

    assert path.suffix == ".wav"
    assert path.exists()


def test_source_close_failure_keeps_audio_and_raises(tmp_path) -> None:
    class BrokenClose(FakeSource):
        def close(self):
            raise OSError("device vanished")

    engine = AudioCaptureEngine(BrokenClose([_chunk()]))
    engine.start(CaptureInfo(name="mic", sample_rate=16_000, channels=1), tmp_path / "a.wav", lambda b: None)

    with pytest.raises(CaptureError, match="device vanished"):
        engine.stop()

    assert read_wave(tmp_path / "a.wav")[0].shape == (1600, 1)
    assert not engine.is_active
