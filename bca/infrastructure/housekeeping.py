import logging
from pathlib import Path
from typing import Iterable

TMP_MARKER = ".bca-tmp"


def temp_output_path(output_path: Path) -> Path:
    """song.mp3 -> .song.bca-tmp.mp3 (hidden; extension kept so ffmpeg picks the muxer)."""
    return output_path.with_name(f".{output_path.stem}{TMP_MARKER}{output_path.suffix}")


class HousekeepingService:
    """Service for cleaning up partial outputs left by an interrupted run."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def cleanup_temp_outputs(self, output_paths: Iterable[Path]) -> int:
        """Removes the temp files belonging to the given destinations.

        Only paths derived from the current jobs are touched; anything else in
        the output tree is left alone, whatever its name.
        """
        removed = 0
        for output_path in output_paths:
            tmp_path = temp_output_path(output_path)
            try:
                tmp_path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                self.logger.warning(f"Could not remove stale temp file {tmp_path}: {e}")
        if removed:
            self.logger.info(f"Removed {removed} stale temp files")
        return removed
