"""Tests for the Typer command line interface."""

from __future__ import annotations

import wave
from pathlib import Path

import httpx
import numpy as np
import pytest
from typer.testing import CliRunner

from voxnote import cli
from voxnote.config import get_settings
from voxnote.core.audio import AudioSource, DeviceUnavailableError
from voxnote.data.models import AudioBuffer, Note
from voxnote.data.storage import NoteStore
from voxnote.services import factory
from voxnote.services.summarization import SummarizationClient
from voxnote.services.transcription import DummyRecognizer

runner = CliRunner()


class FakeSource(AudioSource):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail

    def open(self, info, on_buffer, on_error=None):
        if self.fail:
            raise DeviceUnavailableError("microphone busy")
        for _ in range(3):
            on_buffer(AudioBuffer(np.zeros((1600, 1), dtype=np.float32), info.sample_rate, info.channels))
        return info

    def close(self):
        pass


@pytest.fixture()
def store() -> NoteStore:
    store = NoteStore(get_settings().database_path)
    store.initialize()
    return store


def _note(note_id: str, timestamp: float, **kwargs) -> Note:
    return Note(id=note_id, timestamp=timestamp, audio_path=Path(f"{note_id}.wav"), **kwargs)


def test_languages_marks_default() -> None:
    result = runner.invoke(cli.app, ["languages"])

    assert result.exit_code == 0
    assert result.output.splitlines() == ["en-US (default)", "ru-RU"]


def test_notes_lists_newest_first(store) -> None:
    store.save(_note("older", 100.0, transcript="first note"))
    store.save(_note("newer", 200.0, transcript="second note", summary="Short summary"))

    result = runner.invoke(cli.app, ["notes"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].startswith("newer") and lines[0].endswith("Short summary")
    assert lines[1].startswith("older") and lines[1].endswith("first note")


def test_notes_when_empty(store) -> None:
    result = runner.invoke(cli.app, ["notes"])

    assert result.output.strip() == "No notes yet."


def test_show_and_delete(store) -> None:
    store.save(_note("abc", 100.0, transcript="buy milk", language="en-US"))

    shown = runner.invoke(cli.app, ["show", "abc"])
    assert shown.exit_code == 0
    assert "buy milk" in shown.output
    assert "(none)" in shown.output

    deleted = runner.invoke(cli.app, ["delete", "abc"])
    assert deleted.exit_code == 0
    assert store.fetch("abc") is None

    assert runner.invoke(cli.app, ["delete", "abc"]).exit_code == 2
    assert runner.invoke(cli.app, ["show", "abc"]).exit_code == 2


def test_show_reports_audio_length(store, tmp_path) -> None:
    audio_path = tmp_path / "abc.wav"
    with wave.open(str(audio_path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(16_000)
        wf.writeframes(np.zeros(40_000, dtype=np.int16).tobytes())
    store.save(Note(id="abc", timestamp=100.0, audio_path=audio_path, transcript="buy milk"))

    result = runner.invoke(cli.app, ["show", "abc"])

    assert result.exit_code == 0
    assert f"Audio: {audio_path} (2.5 s)" in result.output


def test_summarize_attaches_summary(store, monkeypatch) -> None:
    store.save(_note("abc", 100.0, transcript="buy milk and go to the gym"))
    client = SummarizationClient(
        base_url="http://llm.test",
        timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"response": "Grocery: milk."})),
    )
    monkeypatch.setattr(cli, "resolve_summarizer", lambda enabled, settings=None: client)

    result = runner.invoke(cli.app, ["summarize", "abc"])

    assert result.exit_code == 0
    assert "Grocery: milk." in result.output
    assert store.fetch("abc").summary == "Grocery: milk."

    again = runner.invoke(cli.app, ["summarize", "abc"])
    assert "already has a summary" in again.output


def test_summarize_failure_exits_non_zero(store, monkeypatch) -> None:
    store.save(_note("abc", 100.0, transcript="buy milk"))
    client = SummarizationClient(
        base_url="http://llm.test",
        timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    monkeypatch.setattr(cli, "resolve_summarizer", lambda enabled, settings=None: client)

    result = runner.invoke(cli.app, ["summarize", "abc"])

    assert result.exit_code == 1
    assert store.fetch("abc").summary is None


def test_record_saves_note(store, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_build_source", lambda device, settings: FakeSource())

    result = runner.invoke(
        cli.app,
        ["record", "--recognizer", "dummy", "--no-summary", "--duration", "0"],
    )

    assert result.exit_code == 0, result.output
    assert "Dummy transcript of 0.3s of en-US audio" in result.output
    saved = store.list()
    assert len(saved) == 1
    assert saved[0].audio_path.exists()


def test_record_reports_unavailable_device(store, monkeypatch) -> None:
    monkeypatch.setattr(cli, "_build_source", lambda device, settings: FakeSource(fail=True))

    result = runner.invoke(cli.app, ["record", "--recognizer", "dummy", "--no-summary", "--duration", "0"])

    assert result.exit_code == 1
    assert store.list() == []


def test_record_rejects_unsupported_language() -> None:
    result = runner.invoke(cli.app, ["record", "--language", "xx-XX", "--recognizer", "dummy"])

    assert result.exit_code == 2


def test_factory_resolves_backends() -> None:
    assert isinstance(factory.resolve_recognizer_backend("Dummy"), DummyRecognizer)
    assert factory.resolve_summarizer(False) is None
    assert isinstance(factory.resolve_summarizer(True), SummarizationClient)
    with pytest.raises(factory.ServiceConfigurationError):
        factory.resolve_recognizer_backend("whisper")
