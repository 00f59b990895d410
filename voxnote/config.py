"""Global configuration using Pydantic settings."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SUMMARY_PROMPT = (
    "You are a note-taking assistant. Rewrite the voice note below as a short, "
    "structured summary: group related points under topics and list any tasks "
    "as separate items. Answer in the language of the note ({language}).\n\n"
    "Voice note:\n{transcript}\n"
)


class Settings(BaseSettings):
    """Application wide settings loaded from environment variables."""

    base_dir: Path = Field(default_factory=lambda: Path("recordings"))
    database_path: Path = Field(default_factory=lambda: Path("voxnote.db"))
    sample_rate: int = 16_000
    channels: int = 1
    block_size: int = 1024
    feed_queue_size: int = 64
    default_language: str = "en-US"
    supported_languages: List[str] = Field(default_factory=lambda: ["en-US", "ru-RU"])
    recognizer_backend: str = "vosk"
    vosk_model_dir: Optional[Path] = None
    input_device: Optional[str] = None
    audio_format: str = "wav"
    ffmpeg_binary: str = "ffmpeg"
    summary_enabled: bool = True
    summary_url: str = "http://127.0.0.1:11434"
    summary_model: Optional[str] = None
    summary_timeout: float = 60.0
    summary_prompt: str = DEFAULT_SUMMARY_PROMPT
    transcriber_stop_timeout: float = 5.0
    session_prefix: str = "session"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="VOXNOTE_",
        env_file=".env",
        case_sensitive=False,
    )

    @field_validator("audio_format")
    @classmethod
    def _check_audio_format(cls, value: str) -> str:
        normalised = value.strip().lower()
        if normalised not in {"wav", "m4a"}:
            raise ValueError("audio_format must be 'wav' or 'm4a'")
        return normalised

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalised = value.strip().upper()
        if normalised not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be a standard logging level name")
        return normalised

    @field_validator("feed_queue_size", "block_size", "sample_rate", "channels")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @property
    def recordings_dir(self) -> Path:
        path = Path(self.base_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return a singleton instance of the application settings."""

    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access reloads the environment."""

    global _settings
    _settings = None


__all__ = ["DEFAULT_SUMMARY_PROMPT", "Settings", "get_settings", "reset_settings"]
