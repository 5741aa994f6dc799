import os
import sys
import yaml
from pathlib import Path
from typing import Optional
from pydantic import ValidationError

from bca.domain.errors import ConfigurationError
from .models import AppConfig

FFMPEG_EXECUTABLE = "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"


def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config into AppConfig. A missing file yields the defaults."""
    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid config file {config_path}: {e}") from e


def save_config(config: AppConfig, config_path: Path) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(exclude_defaults=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(data, f, sort_keys=False)


def resolve_ffmpeg_path(value: Optional[str]) -> Optional[Path]:
    """Resolves user input to an ffmpeg executable.

    Accepts the executable itself, or a directory containing it directly or
    under ``bin/``. Returns None when nothing usable is found.
    """
    if not value:
        return None
    candidate = Path(value.strip().strip('"')).expanduser()

    if candidate.is_file():
        return candidate.resolve()

    if candidate.is_dir():
        for option in (candidate / FFMPEG_EXECUTABLE, candidate / "bin" / FFMPEG_EXECUTABLE):
            if option.is_file():
                return option.resolve()

    return None


def default_checkpoint_path(config: AppConfig, config_path: Path) -> Path:
    if config.general.checkpoint_path:
        return Path(os.path.expanduser(config.general.checkpoint_path))
    return config_path.parent / "checkpoint.yaml"
