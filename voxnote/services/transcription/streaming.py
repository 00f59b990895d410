"""Incremental transcription of a live buffer stream."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from ...config import get_settings
from ...data.models import AudioBuffer, TranscriptState
from ...logging import get_logger
from ...utils.audio import pcm16_mono_bytes
from ...utils.queues import DropOldestQueue, QueueClosed
from .base import RecognitionError, SpeechRecognizer

LOGGER = get_logger(__name__)

UpdateCallback = Callable[[TranscriptState], None]
RecognitionErrorCallback = Callable[[RecognitionError], None]


class StreamingTranscriber:
    """Feed audio buffers into a recogniser on a worker thread.

    ``feed`` never blocks: buffers land in a bounded inbox that drops the
    oldest buffer when the recogniser falls behind. Buffers fed before
    ``start`` wait in the inbox for the next run.

    ``on_update`` receives zero or more interim states followed by exactly one
    final state. If the recogniser breaks mid-stream the last partial text is
    emitted as final, ``on_error`` is called, and later buffers are ignored.

    Every run has a generation number. A worker left behind by a ``stop`` that
    timed out no longer matches it and stops calling the recogniser, and calls
    into the recogniser are serialised, so the next run starts clean.
    """

    def __init__(self, recognizer: SpeechRecognizer, queue_size: Optional[int] = None) -> None:
        self.recognizer = recognizer
        self.queue_size = queue_size or get_settings().feed_queue_size
        self._lock = threading.Lock()
        self._recognizer_lock = threading.Lock()
        self._inbox: DropOldestQueue[AudioBuffer] = DropOldestQueue(self.queue_size)
        self._thread: Optional[threading.Thread] = None
        self._on_update: Optional[UpdateCallback] = None
        self._on_error: Optional[RecognitionErrorCallback] = None
        self._latest = TranscriptState()
        self._error: Optional[RecognitionError] = None
        self._generation = 0
        self.language: Optional[str] = None
        self.dropped_buffers = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    @property
    def latest(self) -> TranscriptState:
        with self._lock:
            return self._latest

    @property
    def error(self) -> Optional[RecognitionError]:
        return self._error

    def start(
        self,
        language: str,
        on_update: UpdateCallback,
        sample_rate: int,
        on_error: Optional[RecognitionErrorCallback] = None,
    ) -> None:
        if self._thread is not None:
            raise RuntimeError("Transcriber is already running; stop it before changing language")

        LOGGER.info("Starting %s recognition at %s Hz", language, sample_rate)
        try:
            with self._recognizer_lock:
                self.recognizer.begin(language, sample_rate)
        except Exception as exc:
            self.discard_pending()
            if isinstance(exc, RecognitionError):
                raise
            raise RecognitionError(f"Recogniser failed to start for {language}: {exc}") from exc

        with self._lock:
            self._latest = TranscriptState()
            self._generation += 1
            generation = self._generation
            self._on_update = on_update
            self._on_error = on_error
        self._error = None
        self.language = language
        self.dropped_buffers = 0
        self._thread = threading.Thread(
            target=self._run,
            args=(self._inbox, generation),
            name="TranscriberThread",
            daemon=True,
        )
        self._thread.start()

    def feed(self, buffer: AudioBuffer) -> None:
        """Queue a buffer without blocking; safe to call from the audio callback."""

        if self._thread is not None and self._error is not None:
            return
        self._inbox.put(buffer)

    def discard_pending(self) -> None:
        """Forget buffers queued for a run that is not going to start."""

        if self._thread is None:
            self._inbox = DropOldestQueue(self.queue_size)

    def _recognize(self, generation: int, call: Callable[..., str], *args: object) -> Optional[str]:
        # ``None`` means the run was abandoned and the recogniser belongs to someone else.
        with self._recognizer_lock:
            if generation != self._generation:
                return None
            return call(*args)

    def _run(self, inbox: DropOldestQueue[AudioBuffer], generation: int) -> None:
        while True:
            try:
                buffer = inbox.get()
            except QueueClosed:
                break
            if buffer is None:
                continue
            try:
                text = self._recognize(generation, self.recognizer.accept, pcm16_mono_bytes(buffer.samples))
            except Exception as exc:
                self._fail(exc, generation)
                return
            if text is None:
                LOGGER.debug("Abandoned recognition run %s exiting", generation)
                return
            self._publish(text, False, generation)

        try:
            text = self._recognize(generation, self.recognizer.finish)
        except Exception as exc:
            self._fail(exc, generation)
            return
        if text is not None:
            self._publish(text or self.latest.text, True, generation)

    def _fail(self, exc: Exception, generation: int) -> None:
        if generation != self._generation:
            return
        error = exc if isinstance(exc, RecognitionError) else RecognitionError(str(exc))
        self._error = error
        LOGGER.warning("Recognition failed; keeping partial transcript: %s", error)
        self._publish(self.latest.text, True, generation)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:  # pragma: no cover - callbacks should not break pipeline
                LOGGER.exception("Recognition error callback raised an exception")

    def _publish(self, text: str, final: bool, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if self._latest.is_final:
                return
            if not final and text == self._latest.text:
                return
            state = TranscriptState(text=text, is_final=final)
            self._latest = state
            on_update = self._on_update
        LOGGER.debug("Transcript update (final=%s): %s", final, text)
        if on_update is not None:
            try:
                on_update(state)
            except Exception:  # pragma: no cover - callbacks should not break pipeline
                LOGGER.exception("Transcript update callback raised an exception")

    def stop(self, timeout: Optional[float] = 5.0) -> TranscriptState:
        """Drain the inbox, finish recognition and return the final transcript state.

        If the worker does not finish within ``timeout`` the last partial text
        becomes final and the run is abandoned.
        """

        thread = self._thread
        if thread is None:
            self.discard_pending()
            latest = self.latest
            return latest if latest.is_final else TranscriptState(text=latest.text, is_final=True)

        inbox = self._inbox
        inbox.close()
        thread.join(timeout)
        finished = not thread.is_alive()
        if not finished:
            LOGGER.warning("Recogniser did not finish within %s s; using last partial transcript", timeout)
            self._publish(self.latest.text, True, self._generation)
        with self._lock:
            self._generation += 1
        if finished:
            try:
                with self._recognizer_lock:
                    self.recognizer.close()
            except Exception:  # pragma: no cover - best effort cleanup
                LOGGER.debug("Recogniser close failed", exc_info=True)

        self.dropped_buffers = inbox.dropped
        if inbox.dropped:
            LOGGER.warning("Dropped %s audio buffer(s) because recognition fell behind", inbox.dropped)
        self._inbox = DropOldestQueue(self.queue_size)
        self._thread = None
        return self.latest


__all__ = ["StreamingTranscriber"]
