"""Typer CLI entry point for voxnote."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

import typer

from .config import Settings, get_settings
from .core.audio.devices import format_device_table, parse_device
from .core.audio.engine import AudioCaptureEngine
from .core.audio.base import AudioSource, DeviceUnavailableError
from .core.pipeline.coordinator import RecordingCoordinator, SessionListener
from .data.models import RecordingSession, SessionOutcome, TranscriptState
from .data.storage import NoteStore, StorageError
from .logging import configure_logging, get_logger
from .services.factory import (
    ServiceConfigurationError,
    resolve_recognizer_backend,
    resolve_summarizer,
)
from .services.transcription.base import RecognitionError
from .services.transcription.streaming import StreamingTranscriber
from .utils.audio import wave_duration

app = typer.Typer(help="voxnote voice notes recorder")
LOGGER = get_logger(__name__)


def _open_store(settings: Settings) -> NoteStore:
    store = NoteStore(settings.database_path)
    store.initialize()
    return store


def _build_source(device: Optional[str], settings: Settings) -> AudioSource:
    from .core.audio.sounddevice_backend import SoundDeviceSource

    try:
        return SoundDeviceSource(device=parse_device(device), block_size=settings.block_size)
    except DeviceUnavailableError as exc:
        raise typer.BadParameter(str(exc)) from exc


class _ConsoleListener(SessionListener):
    """Echo transcript progress and the outcome to the terminal."""

    def __init__(self) -> None:
        self.done = threading.Event()

    def on_transcript_update(self, state: TranscriptState) -> None:
        prefix = "final" if state.is_final else "…"
        typer.echo(f"[{prefix}] {state.text}")

    def on_status_changed(self, session: RecordingSession) -> None:
        LOGGER.debug("Session %s is %s", session.id, session.status.value)

    def on_session_completed(self, outcome: SessionOutcome) -> None:
        self.done.set()

    def on_session_failed(self, outcome: SessionOutcome) -> None:
        self.done.set()


def _format_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def _echo_outcome(outcome: SessionOutcome) -> None:
    if outcome.failure is not None:
        typer.echo(f"Session failed ({outcome.failure.kind.value}): {outcome.failure.message}", err=True)
        if outcome.audio_path is not None and outcome.audio_path.exists():
            typer.echo(f"Partial audio kept at {outcome.audio_path}")
        return

    note = outcome.note
    typer.echo(f"Note {note.id} saved; audio at {note.audio_path}")
    if outcome.recognition_error:
        typer.echo(f"Recognition stopped early: {outcome.recognition_error}", err=True)
    if outcome.dropped_buffers:
        typer.echo(f"{outcome.dropped_buffers} audio buffer(s) were skipped by the recogniser", err=True)
    typer.echo("Transcript:")
    typer.echo(note.transcript or "(empty)")
    if note.summary:
        typer.echo("Summary:")
        typer.echo(note.summary)
    elif outcome.summary is not None:
        typer.echo(f"No summary ({outcome.summary.failure.value}): {outcome.summary.detail}", err=True)


@app.command()
def devices() -> None:
    """List available audio input devices."""

    configure_logging(get_settings().log_level)
    typer.echo(format_device_table())


@app.command()
def languages() -> None:
    """List languages accepted by ``record --language``."""

    settings = get_settings()
    for code in settings.supported_languages:
        marker = " (default)" if code == settings.default_language else ""
        typer.echo(f"{code}{marker}")


@app.command()
def record(
    language: Optional[str] = typer.Option(None, help="Recognition language, e.g. en-US"),
    duration: Optional[float] = typer.Option(None, help="Duration in seconds; default waits for Enter"),
    device: Optional[str] = typer.Option(None, help="Input device id/name"),
    recognizer: Optional[str] = typer.Option(None, help="Recogniser backend: dummy/vosk"),
    summary: Optional[bool] = typer.Option(None, "--summary/--no-summary", help="Summarise the transcript"),
) -> None:
    """Record a voice note, transcribe it live and summarise it."""

    settings = get_settings()
    configure_logging(settings.log_level)
    language = language or settings.default_language
    if language not in settings.supported_languages:
        raise typer.BadParameter(
            f"Unsupported language {language}; choose from {', '.join(settings.supported_languages)}"
        )

    try:
        speech = resolve_recognizer_backend(recognizer or settings.recognizer_backend, settings)
    except (ServiceConfigurationError, RecognitionError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    summarizer = resolve_summarizer(settings.summary_enabled if summary is None else summary, settings)

    listener = _ConsoleListener()
    coordinator = RecordingCoordinator(
        capture=AudioCaptureEngine(
            _build_source(device or settings.input_device, settings),
            audio_format=settings.audio_format,
            ffmpeg_binary=settings.ffmpeg_binary,
        ),
        transcriber=StreamingTranscriber(speech),
        store=_open_store(settings),
        summarizer=summarizer,
        listener=listener,
        base_dir=settings.recordings_dir,
    )

    try:
        session = coordinator.start(language)
        if session.status.is_terminal:
            _echo_outcome(coordinator.outcome)
            raise typer.Exit(code=1)

        typer.echo(f"Recording {session.id}; press Enter to stop")
        try:
            if duration is not None:
                listener.done.wait(duration)
            else:
                typer.prompt("", default="", show_default=False, prompt_suffix="")
        except (KeyboardInterrupt, typer.Abort):
            LOGGER.info("Recording interrupted by user; finishing up")

        coordinator.stop()
        outcome = coordinator.wait()
        if outcome is not None:
            _echo_outcome(outcome)
            if outcome.failure is not None:
                raise typer.Exit(code=1)
    finally:
        coordinator.close()


@app.command("notes")
def list_notes() -> None:
    """List saved notes, newest first."""

    store = _open_store(get_settings())
    saved = store.list()
    if not saved:
        typer.echo("No notes yet.")
        return
    for note in saved:
        preview = (note.summary or note.transcript or "(empty)").splitlines()[0][:60]
        typer.echo(f"{note.id}  {_format_timestamp(note.timestamp)}  {preview}")


@app.command()
def show(note_id: str = typer.Argument(..., help="Note id")) -> None:
    """Print a note's transcript and summary."""

    note = _open_store(get_settings()).fetch(note_id)
    if note is None:
        raise typer.BadParameter(f"Unknown note {note_id}")
    typer.echo(f"Recorded {_format_timestamp(note.timestamp)} ({note.language or 'unknown language'})")
    duration = wave_duration(note.audio_path)
    length = f" ({duration:.1f} s)" if duration is not None else ""
    typer.echo(f"Audio: {note.audio_path}{length}")
    typer.echo("Transcript:")
    typer.echo(note.transcript or "(empty)")
    typer.echo("Summary:")
    typer.echo(note.summary or "(none)")


@app.command()
def delete(note_id: str = typer.Argument(..., help="Note id")) -> None:
    """Delete a note record; the audio file is left on disk."""

    try:
        _open_store(get_settings()).delete(note_id)
    except StorageError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Deleted note {note_id}")


@app.command()
def summarize(note_id: str = typer.Argument(..., help="Note id")) -> None:
    """Retry summarisation for a note that has no summary yet."""

    settings = get_settings()
    configure_logging(settings.log_level)
    store = _open_store(settings)
    note = store.fetch(note_id)
    if note is None:
        raise typer.BadParameter(f"Unknown note {note_id}")
    if note.summary:
        typer.echo("Note already has a summary.")
        return
    if not note.transcript.strip():
        raise typer.BadParameter("Note has an empty transcript")

    client = resolve_summarizer(True, settings)
    result = client.summarize_blocking(note.transcript, language=note.language)
    if not result.ok:
        typer.echo(f"Summarisation failed ({result.failure.value}): {result.detail}", err=True)
        raise typer.Exit(code=1)
    try:
        store.attach_summary(note.id, result.text)
    except StorageError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(result.text)


def main() -> None:  # pragma: no cover - console script
    app()


if __name__ == "__main__":  # pragma: no cover
    app()
