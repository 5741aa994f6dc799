import logging
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "conversion.log"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def resolve_log_file(log_dir: Path, log_path: Optional[Path] = None) -> Path:
    """--log-path wins; otherwise conversion.log next to the config."""
    return Path(log_path).expanduser() if log_path else Path(log_dir) / LOG_FILE_NAME


def setup_logging(log_dir: Path, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """Routes all BCA logging to a single file.

    Any handlers installed earlier are replaced, so calling this again (tests,
    a second run in the same process) switches files cleanly. ``debug`` adds
    the ffmpeg command lines and per-job timings.
    """
    log_file = resolve_log_file(log_dir, log_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Source file names are logged verbatim and may be non-ASCII
    handler = logging.FileHandler(log_file, encoding="utf-8")
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=[handler],
        force=True,
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file} (debug={'ON' if debug else 'OFF'})")
    return logger
