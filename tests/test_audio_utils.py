"""Tests for PCM helpers and FFmpeg transcoding."""

from __future__ import annotations

import subprocess
import wave

import numpy as np

from voxnote.utils import audio


def test_to_pcm16_clips_out_of_range_samples() -> None:
    pcm = audio.to_pcm16(np.array([-2.0, -1.0, 0.0, 0.5, 2.0], dtype=np.float32))

    assert pcm.dtype == np.int16
    assert pcm.tolist() == [-32767, -32767, 0, 16383, 32767]


def test_pcm16_mono_bytes_averages_channels() -> None:
    stereo = np.array([[0.5, -0.5], [1.0, 0.0]], dtype=np.float32)

    data = np.frombuffer(audio.pcm16_mono_bytes(stereo), dtype="<i2")

    assert data.tolist() == [0, 16383]


def _silent_wav(path, frames: int = 160, rate: int = 16_000):
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(np.zeros(frames, dtype=np.int16).tobytes())
    return path


def test_wave_duration_reads_header(tmp_path) -> None:
    path = _silent_wav(tmp_path / "note.wav", frames=24_000)

    assert audio.wave_duration(path) == 1.5


def test_wave_duration_is_none_for_missing_or_non_wav_files(tmp_path) -> None:
    (tmp_path / "note.m4a").write_bytes(b"aac")

    assert audio.wave_duration(tmp_path / "missing.wav") is None
    assert audio.wave_duration(tmp_path / "note.m4a") is None


def test_transcode_keeps_wav_when_ffmpeg_missing(tmp_path, monkeypatch) -> None:
    source = _silent_wav(tmp_path / "note.wav")
    monkeypatch.setattr(audio, "resolve_ffmpeg_binary", lambda binary: None)

    assert audio.transcode_to_m4a(source) == source
    assert source.exists()


def test_transcode_replaces_wav_on_success(tmp_path, monkeypatch) -> None:
    source = _silent_wav(tmp_path / "note.wav")
    monkeypatch.setattr(audio, "resolve_ffmpeg_binary", lambda binary: "/usr/bin/ffmpeg")
    commands = []

    def fake_run(command, **kwargs):
        commands.append(command)
        (tmp_path / "note.m4a").write_bytes(b"aac")
        return subprocess.CompletedProcess(command, 0, stdout=b"", stderr=b"")

    monkeypatch.setattr(audio.subprocess, "run", fake_run)

    result = audio.transcode_to_m4a(source)

    assert result == tmp_path / "note.m4a"
    assert not source.exists()
    assert commands[0][0] == "/usr/bin/ffmpeg"
    assert "aac" in commands[0]


def test_transcode_failure_keeps_wav(tmp_path, monkeypatch) -> None:
    source = _silent_wav(tmp_path / "note.wav")
    monkeypatch.setattr(audio, "resolve_ffmpeg_binary", lambda binary: "/usr/bin/ffmpeg")

    def fake_run(command, **kwargs):
        (tmp_path / "note.m4a").write_bytes(b"partial")
        return subprocess.CompletedProcess(command, 1, stdout=b"", stderr=b"encoder exploded")

    monkeypatch.setattr(audio.subprocess, "run", fake_run)

    assert audio.transcode_to_m4a(source) == source
    assert source.exists()
    assert not (tmp_path / "note.m4a").exists()
