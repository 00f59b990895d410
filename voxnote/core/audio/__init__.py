"""Audio capture package."""

from .base import AudioSource, CaptureError, CaptureInfo, DeviceUnavailableError
from .engine import AudioCaptureEngine

__all__ = [
    "AudioCaptureEngine",
    "AudioSource",
    "CaptureError",
    "CaptureInfo",
    "DeviceUnavailableError",
]
