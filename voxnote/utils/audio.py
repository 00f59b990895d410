"""Audio processing utilities."""

from __future__ import annotations

import shutil
import subprocess
import wave
from pathlib import Path
from typing import Optional

import numpy as np

from ..logging import get_logger

LOGGER = get_logger(__name__)


def to_pcm16(data: np.ndarray) -> np.ndarray:
    """Convert float samples in ``[-1, 1]`` to clipped int16 samples."""

    clipped = np.clip(np.asarray(data, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16)


def ensure_mono(data: np.ndarray) -> np.ndarray:
    if data.ndim == 1 or data.shape[1] == 1:
        return data.reshape(-1, 1)
    return data.mean(axis=1, keepdims=True)


def pcm16_mono_bytes(data: np.ndarray) -> bytes:
    """Return little-endian 16-bit mono PCM, the format speech recognisers expect."""

    return to_pcm16(ensure_mono(np.asarray(data, dtype=np.float32))).tobytes()


def wave_duration(path: Path) -> Optional[float]:
    """Return the length of a WAV file in seconds, or ``None`` if it is not a readable WAV."""

    try:
        with wave.open(str(path), "rb") as wf:
            rate = wf.getframerate()
            return wf.getnframes() / float(rate) if rate else 0.0
    except (OSError, EOFError, wave.Error):
        return None


def resolve_ffmpeg_binary(binary: str) -> Optional[str]:
    """Return the absolute path to the requested FFmpeg binary if available."""

    if not binary:
        binary = "ffmpeg"

    found = shutil.which(binary)
    if found:
        return found

    candidate = Path(binary)
    if candidate.exists():
        return str(candidate)

    return None


def transcode_to_m4a(source: Path, binary: str = "ffmpeg", timeout: float = 120.0) -> Path:
    """Encode ``source`` as AAC in an M4A container next to it.

    The original WAV is removed only once FFmpeg reports success. Any failure
    leaves the WAV untouched and returns its path so no audio is lost.
    """

    source = Path(source)
    executable = resolve_ffmpeg_binary(binary)
    if executable is None:
        LOGGER.warning("FFmpeg binary '%s' not found; keeping %s", binary, source.name)
        return source

    target = source.with_suffix(".m4a")
    command = [
        executable,
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(source),
        "-c:a",
        "aac",
        "-b:a",
        "128k",
        str(target),
    ]
    try:
        completed = subprocess.run(  # noqa: S603 - required to spawn ffmpeg
            command,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        LOGGER.warning("FFmpeg transcoding of %s failed: %s", source.name, exc)
        target.unlink(missing_ok=True)
        return source

    if completed.returncode != 0 or not target.exists():
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        LOGGER.warning(
            "FFmpeg exited with %s while transcoding %s: %s",
            completed.returncode,
            source.name,
            stderr,
        )
        target.unlink(missing_ok=True)
        return source

    source.unlink(missing_ok=True)
    LOGGER.info("Transcoded %s to %s", source.name, target.name)
    return target


__all__ = [
    "ensure_mono",
    "pcm16_mono_bytes",
    "resolve_ffmpeg_binary",
    "to_pcm16",
    "transcode_to_m4a",
    "wave_duration",
]
