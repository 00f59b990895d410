"""Capture engine that fans microphone buffers out to a consumer and a file."""

from __future__ import annotations

import queue
import threading
import wave
from pathlib import Path
from typing import Optional

from ...data.models import AudioBuffer
from ...logging import get_logger
from ...utils.audio import transcode_to_m4a
from .base import (
    AudioSource,
    BufferCallback,
    CaptureError,
    CaptureInfo,
    DeviceUnavailableError,
    ErrorCallback,
)
from .writers import SessionAudioWriter

LOGGER = get_logger(__name__)

_STOP = object()


class AudioCaptureEngine:
    """Own one capture at a time and persist every buffer to disk.

    The source callback only enqueues: buffers go to the consumer callback
    (which must not block) and to a writer thread that appends them to the
    session WAV file.
    """

    def __init__(
        self,
        source: AudioSource,
        audio_format: str = "wav",
        ffmpeg_binary: str = "ffmpeg",
    ) -> None:
        self.source = source
        self.audio_format = audio_format
        self.ffmpeg_binary = ffmpeg_binary
        self._info: Optional[CaptureInfo] = None
        self._path: Optional[Path] = None
        self._writer: Optional[SessionAudioWriter] = None
        self._writer_queue: "queue.Queue[object]" = queue.Queue()
        self._writer_thread: Optional[threading.Thread] = None
        self._writer_error: Optional[Exception] = None
        self._on_buffer: Optional[BufferCallback] = None
        self._lock = threading.Lock()
        self.buffers_captured = 0
        self.recorded_seconds = 0.0

    @property
    def is_active(self) -> bool:
        return self._writer_thread is not None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def start(
        self,
        info: CaptureInfo,
        path: Path,
        on_buffer: BufferCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> CaptureInfo:
        """Open the source and begin recording to ``path``."""

        with self._lock:
            if self._writer_thread is not None:
                raise CaptureError("Capture is already running")

            self._info = info
            self._path = Path(path)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._on_buffer = on_buffer
            self._writer = SessionAudioWriter(self._path, info.sample_rate, info.channels)
            self._writer_error = None
            self.buffers_captured = 0
            self.recorded_seconds = 0.0
            self._writer_queue = queue.Queue()
            self._writer_thread = threading.Thread(
                target=self._writer_loop,
                args=(self._writer_queue,),
                name="AudioWriterThread",
                daemon=True,
            )
            self._writer_thread.start()

            try:
                negotiated = self.source.open(info, self._handle_buffer, on_error)
            except Exception as exc:
                LOGGER.warning("Failed to open audio source for %s: %s", info.name, exc)
                self._on_buffer = None
                self._shutdown_writer()
                self._path.unlink(missing_ok=True)
                self._path = None
                if isinstance(exc, DeviceUnavailableError):
                    raise
                raise DeviceUnavailableError(str(exc)) from exc

            self._info = negotiated
            LOGGER.info("Capturing %s to %s", negotiated.name, self._path)
            return negotiated

    def _handle_buffer(self, buffer: AudioBuffer) -> None:
        self.buffers_captured += 1
        self._writer_queue.put(buffer)
        on_buffer = self._on_buffer
        if on_buffer is not None:
            on_buffer(buffer)

    def _writer_loop(self, items: "queue.Queue[object]") -> None:
        while True:
            item = items.get()
            if item is _STOP:
                return
            if self._writer_error is not None:
                continue
            try:
                self._writer.append(item)
            except Exception as exc:
                LOGGER.exception("Failed to write audio to %s", self._path)
                self._writer_error = exc

    def _shutdown_writer(self) -> None:
        self._writer_queue.put(_STOP)
        if self._writer_thread is not None:
            self._writer_thread.join()
        self._writer_thread = None
        writer, self._writer = self._writer, None
        if writer is None:
            return
        self.recorded_seconds = writer.duration_seconds
        try:
            writer.close()
        except (OSError, wave.Error) as exc:
            LOGGER.exception("Failed to finalise %s", self._path)
            if self._writer_error is None:
                self._writer_error = exc

    def stop(self) -> Path:
        """Close the source, flush pending buffers to disk and return the file path."""

        with self._lock:
            if self._writer_thread is None or self._path is None:
                raise CaptureError("Capture is not running")
            close_error: Optional[Exception] = None
            try:
                self.source.close()
            except Exception as exc:
                close_error = exc
            self._on_buffer = None
            self._shutdown_writer()

            path = self._path
            LOGGER.info(
                "Stopped capture after %s buffer(s); %.1f s of audio at %s",
                self.buffers_captured,
                self.recorded_seconds,
                path,
            )
            if close_error is not None:
                raise CaptureError(f"Failed to close audio source: {close_error}") from close_error
            if self._writer_error is not None:
                raise CaptureError(f"Failed to persist audio to {path}") from self._writer_error

            if self.audio_format == "m4a":
                path = transcode_to_m4a(path, self.ffmpeg_binary)
            self._path = path
            return path


__all__ = ["AudioCaptureEngine"]
