"""Helpers for enumerating audio input devices using sounddevice."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from ...logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class DeviceInfo:
    id: int
    name: str
    max_input_channels: int
    default_samplerate: float
    hostapi: str
    is_default: bool = False


def list_input_devices() -> List[DeviceInfo]:
    try:
        import sounddevice as sd
    except (ImportError, OSError):
        LOGGER.warning("sounddevice or PortAudio not available; cannot list devices")
        return []

    hostapis = sd.query_hostapis()
    devices = sd.query_devices()
    default_input: Optional[int] = None
    try:
        default_input = int(sd.default.device[0])
    except (TypeError, ValueError, IndexError):
        default_input = None

    results: List[DeviceInfo] = []
    for idx, info in enumerate(devices):
        max_input = int(info.get("max_input_channels") or 0)
        if max_input <= 0:
            continue
        hostapi = hostapis[info["hostapi"]]["name"] if hostapis else "unknown"
        results.append(
            DeviceInfo(
                id=idx,
                name=info["name"],
                max_input_channels=max_input,
                default_samplerate=info.get("default_samplerate", 0.0),
                hostapi=hostapi,
                is_default=idx == default_input,
            )
        )
    return results


def format_device_table(devices: Optional[Iterable[DeviceInfo]] = None) -> str:
    device_list = list_input_devices() if devices is None else list(devices)

    if not device_list:
        return (
            "No input devices detected. Make sure PortAudio is installed and the "
            "microphone is accessible."
        )

    header = f"{'ID':>3} | {'Name':<40} | {'In':>2} | {'Rate':>7} | Host API | Default"
    lines = [header, "-" * len(header)]
    for device in device_list:
        lines.append(
            f"{device.id:>3} | {device.name:<40.40} | {device.max_input_channels:>2} | "
            f"{int(device.default_samplerate):>7} | {device.hostapi:<8} | {('yes' if device.is_default else 'no'):>7}"
        )
    return "\n".join(lines)


def parse_device(device: Optional[str]) -> Optional[int | str]:
    if device is None:
        return None
    device = device.strip()
    if not device or device.lower() == "default":
        return None
    if device.isdigit():
        return int(device)
    return device


__all__ = ["DeviceInfo", "format_device_table", "list_input_devices", "parse_device"]
