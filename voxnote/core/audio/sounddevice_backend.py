"""Microphone tap powered by sounddevice/PortAudio."""

from __future__ import annotations

import contextlib
import dataclasses
import threading
import time
from typing import Optional

from ...data.models import AudioBuffer
from ...logging import get_logger
from .base import (
    AudioSource,
    BufferCallback,
    CaptureError,
    CaptureInfo,
    DeviceUnavailableError,
    ErrorCallback,
)

LOGGER = get_logger(__name__)


class SoundDeviceSource(AudioSource):
    """Input stream using the sounddevice library."""

    def __init__(
        self,
        device: Optional[int | str] = None,
        block_size: int = 1024,
        dtype: str = "float32",
    ) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:  # pragma: no cover - depends on PortAudio install
            raise DeviceUnavailableError("sounddevice and PortAudio are required for capture") from exc

        self._sd = sd
        self._device = device
        self._block_size = block_size
        self._dtype = dtype
        self._stream = None
        self._on_buffer: Optional[BufferCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._closing = threading.Event()
        self._device_info: Optional[dict] = None
        self.info = CaptureInfo(name="microphone", sample_rate=0, channels=0)

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - executed in runtime
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        on_buffer = self._on_buffer
        if on_buffer is None:
            return
        on_buffer(
            AudioBuffer(
                samples=indata.copy(),
                sample_rate=self.info.sample_rate,
                channels=self.info.channels,
                captured_at=time.time(),
            )
        )

    def _finished(self) -> None:  # pragma: no cover - executed in runtime
        if self._closing.is_set():
            return
        LOGGER.error("Input stream on %s ended unexpectedly", self._device)
        if self._on_error is not None:
            self._on_error(CaptureError(f"Input stream on {self._device} ended unexpectedly"))

    def open(
        self,
        info: CaptureInfo,
        on_buffer: BufferCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> CaptureInfo:
        if self._stream is not None:
            raise CaptureError("Input stream is already open")

        LOGGER.info("Opening sounddevice input %s for %s", self._device, info.name)
        self.info = dataclasses.replace(info)
        self._on_buffer = on_buffer
        self._on_error = on_error
        self._closing.clear()

        last_error: Optional[Exception] = None
        requested_sample_rate = int(info.sample_rate)
        for sample_rate in self._resolve_sample_rate_candidates(requested_sample_rate):
            self.info = dataclasses.replace(info, sample_rate=sample_rate)
            try:
                stream = self._sd.InputStream(
                    samplerate=sample_rate,
                    channels=info.channels,
                    dtype=self._dtype,
                    blocksize=self._block_size,
                    device=self._device,
                    callback=self._callback,
                    finished_callback=self._finished,
                )
                stream.start()
            except self._sd.PortAudioError as exc:  # pragma: no cover - depends on runtime device
                last_error = exc
                if "sample rate" in str(exc).lower():
                    LOGGER.warning(
                        "sounddevice rejected %s Hz on %s: %s", sample_rate, self._device, exc
                    )
                    continue
                break
            except ValueError as exc:  # pragma: no cover - unknown device name
                last_error = exc
                break

            self._stream = stream
            if sample_rate != requested_sample_rate:
                LOGGER.warning(
                    "Adjusted sample rate on %s from %s Hz to %s Hz",
                    self._device,
                    requested_sample_rate,
                    sample_rate,
                )
            LOGGER.info(
                "Configured %s with %s channel(s) at %s Hz",
                info.name,
                info.channels,
                sample_rate,
            )
            return self.info

        self._on_buffer = None
        self._on_error = None
        message = f"Failed to open input device {self._device if self._device is not None else 'default'}"
        if last_error is not None:
            message = f"{message}: {last_error}"
        raise DeviceUnavailableError(message) from last_error

    def close(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._closing.set()
        self._stream = None
        LOGGER.info("Closing input stream for %s", self.info.name)
        try:
            stream.stop()
        except self._sd.PortAudioError as exc:  # pragma: no cover - depends on runtime device
            raise CaptureError(f"Failed to stop input stream on {self._device}: {exc}") from exc
        finally:
            with contextlib.suppress(self._sd.PortAudioError):
                stream.close()
            self._on_buffer = None
            self._on_error = None

    def _resolve_sample_rate_candidates(self, requested: int) -> list[int]:
        """Return an ordered list of sample rates to try for the device."""

        candidates: list[int] = []
        if requested > 0:
            candidates.append(requested)

        device_info = self._query_device_info()
        if device_info:
            raw = device_info.get("default_samplerate")
            try:
                default_rate = int(float(raw)) if raw is not None else 0
            except (TypeError, ValueError):
                default_rate = 0
            if default_rate > 0 and default_rate not in candidates:
                candidates.append(default_rate)

        for rate in (48_000, 44_100, 16_000):
            if rate not in candidates:
                candidates.append(rate)
        return candidates

    def _query_device_info(self) -> Optional[dict]:
        if self._device_info is not None:
            return self._device_info
        try:  # pragma: no cover - depends on runtime availability
            self._device_info = self._sd.query_devices(self._device, "input")
        except Exception as exc:  # pragma: no cover - depends on runtime availability
            LOGGER.debug("Failed to query device info for %s: %s", self._device, exc)
            return None
        return self._device_info


__all__ = ["SoundDeviceSource"]
