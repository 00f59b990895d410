"""Recording coordinator owning the capture → transcribe → summarise lifecycle."""

from __future__ import annotations

import concurrent.futures
import dataclasses
import threading
import time
import uuid
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ...config import get_settings
from ...data.models import (
    FailureKind,
    Note,
    RecordingSession,
    SessionFailure,
    SessionOutcome,
    SessionStatus,
    SummaryFailure,
    SummaryResult,
    TranscriptState,
)
from ...data.storage import NoteStore, StorageError
from ...logging import get_logger
from ...services.summarization.client import SummarizationClient
from ...services.transcription.base import RecognitionError
from ...services.transcription.streaming import StreamingTranscriber
from ..audio.base import CaptureError, CaptureInfo
from ..audio.engine import AudioCaptureEngine
from .runner import BackgroundLoop

LOGGER = get_logger(__name__)

_Event = Callable[[], None]


class SessionActiveError(RuntimeError):
    """Raised when ``start`` is called while a recording is still in progress."""


class SessionListener:
    """Receives everything the coordinator pushes outward. Override what you need."""

    def on_transcript_update(self, state: TranscriptState) -> None:
        pass

    def on_status_changed(self, session: RecordingSession) -> None:
        pass

    def on_session_completed(self, outcome: SessionOutcome) -> None:
        pass

    def on_session_failed(self, outcome: SessionOutcome) -> None:
        pass


class RecordingCoordinator:
    """High-level state machine for voice note sessions.

    All session state lives behind one re-entrant lock. Callbacks from the
    audio, transcriber and summary threads enter through methods that take the
    lock and check the session id, so stale callbacks from an earlier session
    are dropped. Listener notifications are delivered after the lock is
    released.
    """

    def __init__(
        self,
        capture: AudioCaptureEngine,
        transcriber: StreamingTranscriber,
        store: NoteStore,
        summarizer: Optional[SummarizationClient] = None,
        listener: Optional[SessionListener] = None,
        base_dir: Optional[Path] = None,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
        stop_timeout: Optional[float] = None,
        summary_timeout: Optional[float] = None,
        runner: Optional[BackgroundLoop] = None,
    ) -> None:
        settings = get_settings()
        self.capture = capture
        self.transcriber = transcriber
        self.store = store
        self.summarizer = summarizer
        self.listener = listener or SessionListener()
        self.base_dir = Path(base_dir or settings.base_dir)
        self.sample_rate = sample_rate or settings.sample_rate
        self.channels = channels or settings.channels
        self.stop_timeout = stop_timeout if stop_timeout is not None else settings.transcriber_stop_timeout
        self.summary_timeout = summary_timeout
        self.default_language = settings.default_language
        self.session_prefix = settings.session_prefix
        self._runner = runner or BackgroundLoop()

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._session: Optional[RecordingSession] = None
        self._transcript = TranscriptState()
        self._note: Optional[Note] = None
        self._outcome: Optional[SessionOutcome] = None
        self._recognition_error: Optional[str] = None
        self._dropped_buffers = 0
        self._summary_future: Optional[concurrent.futures.Future] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._session.status if self._session else SessionStatus.IDLE

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        with self._lock:
            return self._outcome

    def snapshot(self) -> Tuple[Optional[RecordingSession], TranscriptState]:
        """Return a consistent copy of the current session and transcript."""

        with self._lock:
            session = dataclasses.replace(self._session) if self._session else None
            return session, self._transcript

    def wait(self, timeout: Optional[float] = None) -> Optional[SessionOutcome]:
        """Block until the current session is terminal and return its outcome."""

        with self._changed:
            self._changed.wait_for(
                lambda: self._session is None or self._session.status.is_terminal,
                timeout,
            )
            return self._outcome

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def start(self, language: Optional[str] = None) -> RecordingSession:
        """Begin a new session; a failed start returns a ``failed`` session."""

        language = language or self.default_language
        events: List[_Event] = []
        with self._lock:
            if self._session is not None and self._session.status in (
                SessionStatus.RECORDING,
                SessionStatus.STOPPING,
            ):
                raise SessionActiveError(f"Session {self._session.id} is still {self._session.status.value}")
            if self._session is not None and self._session.status == SessionStatus.SUMMARIZING:
                events.extend(self._cancel_summary_locked())

            session = RecordingSession(
                id=f"{self.session_prefix}-{uuid.uuid4().hex[:8]}",
                started_at=time.time(),
                language=language,
            )
            self._session = session
            self._transcript = TranscriptState()
            self._note = None
            self._outcome = None
            self._recognition_error = None
            self._dropped_buffers = 0
            events.extend(self._open_session_locked(session))
            result = dataclasses.replace(session)

        self._dispatch(events)
        return result

    def _open_session_locked(self, session: RecordingSession) -> List[_Event]:
        LOGGER.info("Starting recording session %s (%s)", session.id, session.language)
        path = self.base_dir / f"{session.id}.wav"
        info = CaptureInfo(name="microphone", sample_rate=self.sample_rate, channels=self.channels)

        # Buffers captured before the recogniser starts wait in the transcriber's inbox.
        try:
            negotiated = self.capture.start(
                info,
                path,
                self.transcriber.feed,
                on_error=partial(self._on_capture_error, session.id),
            )
        except CaptureError as exc:
            self.transcriber.discard_pending()
            return self._fail_locked(FailureKind.DEVICE_UNAVAILABLE, str(exc))

        try:
            self.transcriber.start(
                session.language,
                partial(self._on_transcript_update, session.id),
                negotiated.sample_rate,
                on_error=partial(self._on_recognition_error, session.id),
            )
        except RecognitionError as exc:
            try:
                discarded = self.capture.stop()
            except CaptureError:
                LOGGER.exception("Failed to stop capture after recogniser start failure")
                discarded = path
            # The session never began, so its few milliseconds of audio go too.
            discarded.unlink(missing_ok=True)
            return self._fail_locked(FailureKind.RECOGNITION_FAILED, str(exc))

        session.audio_path = path
        session.status = SessionStatus.RECORDING
        return [partial(self.listener.on_status_changed, dataclasses.replace(session))]

    def stop(self) -> Optional[RecordingSession]:
        """Stop recording; a no-op returning ``None`` unless a session is recording."""

        with self._lock:
            session = self._session
            if session is None or session.status != SessionStatus.RECORDING:
                LOGGER.debug("stop() ignored; no session is recording")
                return None
            session.status = SessionStatus.STOPPING
            events: List[_Event] = [partial(self.listener.on_status_changed, dataclasses.replace(session))]
        self._dispatch(events)
        return self._finish_recording(session, error=None)

    def _on_capture_error(self, session_id: str, exc: Exception) -> None:
        # Called from the audio thread; tear down elsewhere so the callback returns.
        threading.Thread(
            target=self._abort_recording,
            args=(session_id, exc),
            name="CaptureAbortThread",
            daemon=True,
        ).start()

    def _abort_recording(self, session_id: str, exc: Exception) -> None:
        with self._lock:
            session = self._session
            if session is None or session.id != session_id or session.status != SessionStatus.RECORDING:
                return
            LOGGER.error("Capture failed during session %s: %s", session_id, exc)
            session.status = SessionStatus.STOPPING
            events: List[_Event] = [partial(self.listener.on_status_changed, dataclasses.replace(session))]
        self._dispatch(events)
        self._finish_recording(session, error=exc)

    def _finish_recording(self, session: RecordingSession, error: Optional[Exception]) -> RecordingSession:
        failure_kind = FailureKind.DEVICE_UNAVAILABLE
        audio_path = session.audio_path
        try:
            audio_path = self.capture.stop()
        except CaptureError as exc:
            LOGGER.exception("Failed to finalise audio for session %s", session.id)
            if error is None:
                error = exc
                failure_kind = FailureKind.INTERNAL_ERROR

        final = self.transcriber.stop(self.stop_timeout)
        dropped = self.transcriber.dropped_buffers
        if not final.is_final:
            final = TranscriptState(text=final.text, is_final=True)

        future: Optional[concurrent.futures.Future] = None
        with self._lock:
            self._transcript = final
            self._dropped_buffers = dropped
            session.audio_path = audio_path
            if error is not None:
                events = self._fail_locked(failure_kind, str(error))
            else:
                events, future = self._persist_locked(session, final, audio_path)
            result = dataclasses.replace(session)

        self._dispatch(events)
        if future is not None:
            future.add_done_callback(partial(self._on_summary_done, session.id))
        return result

    def _persist_locked(
        self,
        session: RecordingSession,
        final: TranscriptState,
        audio_path: Path,
    ) -> Tuple[List[_Event], Optional[concurrent.futures.Future]]:
        note = Note(
            id=uuid.uuid4().hex,
            timestamp=time.time(),
            audio_path=audio_path,
            transcript=final.text,
            language=session.language,
        )
        try:
            self.store.save(note)
        except StorageError as exc:
            LOGGER.error("Failed to save note for session %s: %s", session.id, exc)
            return self._fail_locked(FailureKind.STORAGE_ERROR, str(exc)), None
        self._note = note
        LOGGER.info("Saved note %s for session %s", note.id, session.id)

        if not final.text.strip() or self.summarizer is None:
            return self._complete_locked(summary=None), None

        session.status = SessionStatus.SUMMARIZING
        future = self._runner.submit(
            self.summarizer.summarize(final.text, timeout=self.summary_timeout, language=session.language)
        )
        self._summary_future = future
        return [partial(self.listener.on_status_changed, dataclasses.replace(session))], future

    def _on_summary_done(self, session_id: str, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            LOGGER.debug("Summary call for session %s was cancelled", session_id)
            return
        try:
            result: SummaryResult = future.result()
        except Exception as exc:  # pragma: no cover - summarize() reports its own failures
            LOGGER.exception("Summary call for session %s raised", session_id)
            result = SummaryResult.failed(SummaryFailure.INTERNAL_ERROR, str(exc))

        with self._lock:
            session = self._session
            if (
                future is not self._summary_future
                or session is None
                or session.id != session_id
                or session.status != SessionStatus.SUMMARIZING
            ):
                LOGGER.info("Discarding summary for superseded session %s", session_id)
                return
            self._summary_future = None
            note = self._note
            if result.ok and note is not None:
                try:
                    self.store.attach_summary(note.id, result.text)
                except StorageError as exc:
                    LOGGER.error("Failed to attach summary to note %s: %s", note.id, exc)
                    events = self._fail_locked(FailureKind.STORAGE_ERROR, str(exc), summary=result)
                else:
                    self._note = note.model_copy(update={"summary": result.text})
                    events = self._complete_locked(summary=result)
            else:
                events = self._complete_locked(summary=result)
        self._dispatch(events)

    def _cancel_summary_locked(self) -> List[_Event]:
        future = self._summary_future
        self._summary_future = None
        if future is not None:
            future.cancel()
        LOGGER.info("Cancelled pending summary for session %s", self._session.id)
        return self._complete_locked(
            summary=SummaryResult.failed(SummaryFailure.CANCELLED, "Superseded by a new recording")
        )

    def close(self) -> None:
        """Stop any recording, cancel pending summaries and shut down the loop."""

        self.stop()
        events: List[_Event] = []
        with self._lock:
            if self._session is not None and self._session.status == SessionStatus.SUMMARIZING:
                events = self._cancel_summary_locked()
        self._dispatch(events)
        self._runner.close()

    # ------------------------------------------------------------------
    # Transcriber callbacks
    # ------------------------------------------------------------------
    def _on_transcript_update(self, session_id: str, state: TranscriptState) -> None:
        with self._lock:
            session = self._session
            if session is None or session.id != session_id:
                return
            if session.status not in (SessionStatus.RECORDING, SessionStatus.STOPPING):
                return
            self._transcript = state
        self._dispatch([partial(self.listener.on_transcript_update, state)])

    def _on_recognition_error(self, session_id: str, error: RecognitionError) -> None:
        with self._lock:
            session = self._session
            if session is None or session.id != session_id:
                return
            LOGGER.warning("Recognition degraded for session %s: %s", session_id, error)
            self._recognition_error = str(error)

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------
    def _build_outcome_locked(
        self,
        summary: Optional[SummaryResult],
        failure: Optional[SessionFailure],
    ) -> SessionOutcome:
        session = self._session
        session.ended_at = time.time()
        return SessionOutcome(
            session=dataclasses.replace(session),
            transcript=self._transcript,
            note=self._note,
            summary=summary,
            recognition_error=self._recognition_error,
            failure=failure,
            dropped_buffers=self._dropped_buffers,
        )

    def _complete_locked(self, summary: Optional[SummaryResult]) -> List[_Event]:
        self._session.status = SessionStatus.COMPLETED
        outcome = self._build_outcome_locked(summary, None)
        self._outcome = outcome
        self._changed.notify_all()
        LOGGER.info(
            "Session %s completed (%s)",
            outcome.session.id,
            "summary attached" if summary is not None and summary.ok else "no summary",
        )
        return [
            partial(self.listener.on_status_changed, outcome.session),
            partial(self.listener.on_session_completed, outcome),
        ]

    def _fail_locked(
        self,
        kind: FailureKind,
        message: str,
        summary: Optional[SummaryResult] = None,
    ) -> List[_Event]:
        self._session.status = SessionStatus.FAILED
        outcome = self._build_outcome_locked(summary, SessionFailure(kind=kind, message=message))
        self._outcome = outcome
        self._changed.notify_all()
        LOGGER.error("Session %s failed (%s): %s", outcome.session.id, kind.value, message)
        return [
            partial(self.listener.on_status_changed, outcome.session),
            partial(self.listener.on_session_failed, outcome),
        ]

    def _dispatch(self, events: List[_Event]) -> None:
        for event in events:
            try:
                event()
            except Exception:  # pragma: no cover - listeners should not break pipeline
                LOGGER.exception("Session listener raised an exception")


__all__ = ["RecordingCoordinator", "SessionActiveError", "SessionListener"]
