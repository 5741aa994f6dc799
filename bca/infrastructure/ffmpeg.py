import subprocess
import logging
import time
import threading
from pathlib import Path
from typing import List, Optional
from bca.domain.errors import InvocationError
from bca.domain.models import ConversionJob, JobStatus, RunConfig
from bca.infrastructure.housekeeping import temp_output_path

# One ffmpeg thread per process: the orchestrator's thread count is the only throttle
FFMPEG_THREADS = 1
POLL_INTERVAL_S = 0.1
TERMINATE_GRACE_S = 3.0


class FFmpegAdapter:
    """Wrapper around ffmpeg for audio conversion."""

    def __init__(self, ffmpeg_path: Path, job_timeout_s: Optional[float] = None, debug: bool = False):
        self.ffmpeg_path = Path(ffmpeg_path)
        self.job_timeout_s = job_timeout_s
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def _build_command(self, job: ConversionJob, output_path: Path) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        return [
            str(self.ffmpeg_path),
            "-hide_banner",
            "-loglevel", "error",
            "-nostdin",
            "-y",  # Overwrite output files
            "-i", str(job.source_path),
            "-vn", "-sn", "-dn",  # Audio streams only (drops cover art, subtitles, data)
            "-q:a", job.quality,
            "-threads", str(FFMPEG_THREADS),
            str(output_path),
        ]

    def convert(self, job: ConversionJob, run_config: RunConfig, cancel_event: Optional[threading.Event] = None) -> JobStatus:
        """Runs ffmpeg for one job.

        Returns COMPLETED, or INTERRUPTED when cancel_event fires first.
        Raises InvocationError when ffmpeg cannot start, exits non-zero, or
        exceeds job_timeout_s.
        """
        filename = job.source_path.name
        output_path = job.output_path(run_config.output_dir)
        tmp_path = temp_output_path(output_path)
        # Several workers may create the same directory at once
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self._build_command(job, tmp_path)
        if self.debug:
            self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")
        start_time = time.monotonic()

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
            )
        except OSError as e:
            raise InvocationError(f"Failed to start ffmpeg: {e}") from e

        # Drain stderr concurrently so a full pipe never blocks ffmpeg
        stderr_lines: List[str] = []

        def _reader():
            if not process.stderr:
                return
            for line in process.stderr:
                stderr_lines.append(line)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        while True:
            # A process that already exited keeps its real outcome
            if process.poll() is not None:
                break

            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"FFMPEG_INTERRUPTED: {filename} (cancel requested)")
                self._stop_process(process)
                reader_thread.join(timeout=1.0)
                self._remove_tmp(tmp_path)
                return JobStatus.INTERRUPTED

            if self.job_timeout_s is not None and time.monotonic() - start_time > self.job_timeout_s:
                self.logger.warning(f"FFMPEG_TIMEOUT: {filename} after {self.job_timeout_s:.0f}s")
                self._stop_process(process, grace=0.0)
                reader_thread.join(timeout=1.0)
                self._remove_tmp(tmp_path)
                raise InvocationError(f"ffmpeg timed out after {self.job_timeout_s:.0f}s")

            try:
                process.wait(timeout=POLL_INTERVAL_S)
                break
            except subprocess.TimeoutExpired:
                continue

        reader_thread.join(timeout=1.0)
        stderr_text = "".join(stderr_lines).strip()
        elapsed = time.monotonic() - start_time

        if process.returncode != 0:
            self._remove_tmp(tmp_path)
            if self.debug:
                self.logger.debug(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            message = stderr_text or f"ffmpeg exited with code {process.returncode}"
            raise InvocationError(message, returncode=process.returncode)

        if tmp_path.exists():
            tmp_path.replace(output_path)
        if self.debug:
            self.logger.debug(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")
        return JobStatus.COMPLETED

    def _stop_process(self, process: subprocess.Popen, grace: float = TERMINATE_GRACE_S) -> None:
        if process.poll() is not None:
            return
        if grace > 0:
            process.terminate()
            try:
                process.wait(timeout=grace)
                return
            except subprocess.TimeoutExpired:
                pass
        process.kill()
        process.wait()

    def _remove_tmp(self, tmp_path: Path) -> None:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Could not remove temp output {tmp_path}: {e}")
