from enum import Enum
from pathlib import Path
from typing import List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from bca.config.models import normalize_extension


class JobStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"  # cancelled before or during ffmpeg


class RunPhase(str, Enum):
    SCANNING = "SCANNING"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RunConfig(BaseModel):
    """Parameters of one run; restored verbatim from a checkpoint on resume."""

    model_config = ConfigDict(frozen=True)

    input_dir: Path
    output_dir: Path
    target_format: str
    quality: str  # already mapped to ffmpeg -q:a
    threads: int = Field(ge=1)

    @field_validator("target_format")
    @classmethod
    def validate_target_format(cls, v: str) -> str:
        return normalize_extension(v)


class ConversionJob(BaseModel):
    """One source file slated for conversion."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    relative_path: Path
    target_format: str
    quality: str

    @classmethod
    def for_source(cls, source_path: Path, run_config: RunConfig) -> "ConversionJob":
        try:
            rel_path = source_path.relative_to(run_config.input_dir)
        except ValueError:
            rel_path = Path(source_path.name)
        return cls(
            source_path=source_path,
            relative_path=rel_path,
            target_format=run_config.target_format,
            quality=run_config.quality,
        )

    def output_path(self, output_dir: Path) -> Path:
        """Mirrors the relative directory under output_dir with the target extension."""
        return output_dir / self.relative_path.with_suffix(self.target_format)


class FailureRecord(BaseModel):
    path: Path
    error_message: str


class Checkpoint(BaseModel):
    """Persisted form of RunConfig plus the still-pending source paths.

    Field aliases are the on-disk keys of the checkpoint document.
    """

    model_config = ConfigDict(populate_by_name=True)

    input_dir: Path = Field(alias="inputDir")
    output_dir: Path = Field(alias="outputDir")
    target_format: str = Field(alias="targetFormat")
    quality: str
    cores: int = Field(ge=1)
    total_files: int = Field(alias="totalFiles", ge=0)
    remaining_files: List[Path] = Field(default_factory=list, alias="remainingFiles")

    @field_validator("quality", mode="before")
    @classmethod
    def coerce_quality(cls, v):
        # YAML reads an unquoted 2 as int
        return str(v) if isinstance(v, int) else v

    @classmethod
    def from_run(cls, run_config: RunConfig, total_files: int, remaining: List[Path]) -> "Checkpoint":
        return cls(
            input_dir=run_config.input_dir,
            output_dir=run_config.output_dir,
            target_format=run_config.target_format,
            quality=run_config.quality,
            cores=run_config.threads,
            total_files=total_files,
            remaining_files=list(remaining),
        )

    def to_run_config(self) -> RunConfig:
        return RunConfig(
            input_dir=self.input_dir,
            output_dir=self.output_dir,
            target_format=self.target_format,
            quality=self.quality,
            threads=self.cores,
        )

    def to_document(self) -> dict:
        """Flat, human-readable key/value form used on disk."""
        return {
            "inputDir": str(self.input_dir),
            "outputDir": str(self.output_dir),
            "targetFormat": self.target_format,
            "quality": self.quality,
            "cores": self.cores,
            "totalFiles": self.total_files,
            "remainingFiles": [str(p) for p in self.remaining_files],
        }


class RunReport(BaseModel):
    phase: RunPhase
    total: int = 0
    completed: int = 0
    remaining: int = 0
    failures: List[FailureRecord] = Field(default_factory=list)
    duration_seconds: float = 0.0
    checkpoint_saved: bool = False

    @property
    def cancelled(self) -> bool:
        return self.phase == RunPhase.CANCELLED
