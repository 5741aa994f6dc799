import os
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from bca.config.quality import QUALITY_DEFAULT, QUALITY_MAX, QUALITY_MIN

SUPPORTED_EXTENSIONS = [".wav", ".mp3", ".m4a", ".flac", ".aac", ".ogg"]
TARGET_FORMATS = [".mp3", ".wav", ".flac", ".m4a", ".aac", ".ogg"]


def normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


def available_cores() -> int:
    return os.cpu_count() or 1


def validate_threads(threads: int) -> int:
    """Concurrency cap must be between 1 and the number of CPUs."""
    limit = available_cores()
    if not 1 <= threads <= limit:
        raise ValueError(f"Choose between 1 and {limit} threads, got {threads}")
    return threads


class GeneralConfig(BaseModel):
    ffmpeg_path: Optional[str] = None
    extensions: List[str] = Field(default_factory=lambda: list(SUPPORTED_EXTENSIONS))
    target_formats: List[str] = Field(default_factory=lambda: list(TARGET_FORMATS))
    default_quality: int = Field(default=QUALITY_DEFAULT, ge=QUALITY_MIN, le=QUALITY_MAX)
    threads: Optional[int] = Field(default=None, gt=0)  # None = all CPUs
    checkpoint_path: Optional[str] = None
    job_timeout_s: Optional[float] = Field(default=None, gt=0)
    log_path: Optional[str] = None
    debug: bool = False

    @field_validator("extensions", "target_formats")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        normalized = [normalize_extension(ext) for ext in v if ext.strip()]
        if not normalized:
            raise ValueError("At least one extension is required")
        return normalized


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
