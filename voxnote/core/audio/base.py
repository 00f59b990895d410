"""Audio capture abstractions."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Callable, Optional

from ...data.models import AudioBuffer

BufferCallback = Callable[[AudioBuffer], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class CaptureInfo:
    """Requested (and, once opened, negotiated) capture format."""

    name: str
    sample_rate: int
    channels: int
    device: Optional[str] = None


class AudioSource(abc.ABC):
    """Hardware tap that pushes buffers to a callback from its own thread.

    ``on_buffer`` is invoked from a real-time context and must return quickly.
    ``on_error`` reports a fatal problem after the source was opened.
    """

    info: CaptureInfo

    @abc.abstractmethod
    def open(
        self,
        info: CaptureInfo,
        on_buffer: BufferCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> CaptureInfo:
        """Start delivering buffers; raise ``DeviceUnavailableError`` on failure."""

    @abc.abstractmethod
    def close(self) -> None:
        """Stop delivering buffers and release the device."""


class CaptureError(RuntimeError):
    """Raised when audio capture cannot be initialised or breaks down."""


class DeviceUnavailableError(CaptureError):
    """Raised when the input device is busy, missing, or access is denied."""


__all__ = [
    "AudioSource",
    "BufferCallback",
    "CaptureError",
    "CaptureInfo",
    "DeviceUnavailableError",
    "ErrorCallback",
]
