"""Pipeline orchestrator for the audio conversion job lifecycle.

Runs a set of ConversionJobs through ffmpeg with a fixed concurrency cap,
collects failures, reacts to cancellation, and decides at the end whether
to checkpoint (cancelled with work left) or finalize (everything resolved).

Key responsibilities:
- Submit jobs to a thread pool, never more than ``threads`` in flight
  (submit-on-demand pattern)
- Classify each job outcome: completed, failed (recorded, not retried) or
  interrupted (kept pending for the next resume)
- Publish JobStarted/JobCompleted/JobFailed/JobInterrupted and a
  ProgressUpdated after every job for the UI
- Cooperative cancellation through a threading.Event shared with FFmpegAdapter
- Save or delete the checkpoint when the run leaves RUNNING
"""

import concurrent.futures
import logging
import threading
import time
from collections import deque
from typing import Dict, Iterable, Optional

from bca.domain.errors import InvocationError
from bca.domain.events import (
    ActionMessage,
    JobCompleted,
    JobFailed,
    JobInterrupted,
    JobStarted,
    ProcessingFinished,
    ProgressUpdated,
    RequestShutdown,
    RunStarted,
)
from bca.domain.models import Checkpoint, ConversionJob, JobStatus, RunConfig, RunPhase, RunReport
from bca.infrastructure.checkpoint import CheckpointStore
from bca.infrastructure.event_bus import EventBus
from bca.infrastructure.ffmpeg import FFmpegAdapter
from bca.infrastructure.housekeeping import HousekeepingService
from bca.pipeline.run_state import RunState


class Orchestrator:
    """Audio conversion orchestrator.

    Cancellation is sticky: once ``request_cancel`` has been called the
    instance will not start new jobs, so a resumed run uses a fresh
    Orchestrator.

    Args:
        event_bus: EventBus for publishing job lifecycle and progress events.
        ffmpeg_adapter: FFmpegAdapter (or anything with the same ``convert``).
        checkpoint_store: CheckpointStore written on cancel, deleted on completion.
        housekeeper: Optional HousekeepingService; temp outputs left
            behind by an earlier run of the same jobs are removed first.
    """

    def __init__(
        self,
        event_bus: EventBus,
        ffmpeg_adapter: FFmpegAdapter,
        checkpoint_store: CheckpointStore,
        housekeeper: Optional[HousekeepingService] = None,
        debug: bool = False,
    ):
        self.event_bus = event_bus
        self.ffmpeg_adapter = ffmpeg_adapter
        self.checkpoint_store = checkpoint_store
        self.housekeeper = housekeeper or HousekeepingService()
        self.debug = debug
        self.logger = logging.getLogger(__name__)

        self._cancel_event = threading.Event()
        self._cancel_lock = threading.Lock()

        self.event_bus.subscribe(RequestShutdown, self._on_shutdown_request)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def request_cancel(self) -> bool:
        """Signals cancellation. Returns False if it was already requested."""
        with self._cancel_lock:
            if self._cancel_event.is_set():
                return False
            self._cancel_event.set()
        self.logger.info("Cancellation requested - finishing active jobs, no new jobs will start")
        self.event_bus.publish(ActionMessage(message="STOP requested - saving progress after active jobs"))
        return True

    def _on_shutdown_request(self, event: RequestShutdown):
        self.request_cancel()

    def run(self, run_config: RunConfig, jobs: Iterable[ConversionJob], total: Optional[int] = None) -> RunReport:
        """Runs all jobs and returns the final report.

        ``total`` is the original job count when resuming from a checkpoint;
        jobs resolved before the checkpoint count as already completed.
        """
        # One job per source file
        jobs = list({job.source_path: job for job in jobs}.values())
        if total is not None and total < len(jobs):
            self.logger.warning(
                f"Checkpoint total {total} is smaller than its remaining list ({len(jobs)}); using {len(jobs)}"
            )
        state = RunState(jobs, total if total is not None else len(jobs))
        threads = run_config.threads
        start_time = time.monotonic()

        self.logger.info(
            f"Run started: total={state.total}, pending={len(jobs)}, threads={threads}, "
            f"format={run_config.target_format}, quality={run_config.quality}, "
            f"input={run_config.input_dir}, output={run_config.output_dir}"
        )
        self.housekeeper.cleanup_temp_outputs(job.output_path(run_config.output_dir) for job in jobs)
        self.event_bus.publish(RunStarted(total=state.total, completed=state.completed.value, threads=threads))

        pending = deque(jobs)
        in_flight: Dict[concurrent.futures.Future, ConversionJob] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=threads) as executor:
            def submit_batch():
                """Keep at most `threads` jobs in flight; stop feeding once cancelled."""
                while len(in_flight) < threads and pending and not self._cancel_event.is_set():
                    job = pending.popleft()
                    future = executor.submit(self._process_job, job, run_config, state)
                    in_flight[future] = job

            submit_batch()

            while in_flight:
                try:
                    done, _ = concurrent.futures.wait(
                        set(in_flight.keys()),
                        timeout=1.0,
                        return_when=concurrent.futures.FIRST_COMPLETED
                    )
                except KeyboardInterrupt:
                    # Ctrl+C behaves like the stop key: drain, then checkpoint
                    self.request_cancel()
                    continue

                for future in done:
                    job = in_flight.pop(future)
                    try:
                        future.result()
                    except Exception as e:
                        self.logger.error(f"Worker for {job.source_path} raised unexpectedly: {e}")

                submit_batch()

        report = self._finalize(run_config, state, time.monotonic() - start_time)
        self.event_bus.publish(ProcessingFinished(report=report))
        return report

    def _process_job(self, job: ConversionJob, run_config: RunConfig, state: RunState) -> JobStatus:
        """Converts a single file and records its outcome in ``state``."""
        filename = job.source_path.name

        if self._cancel_event.is_set():
            if self.debug:
                self.logger.debug(f"PROCESS_SKIP: {filename} (cancelled)")
            self._publish_interrupted(job, state)
            return JobStatus.INTERRUPTED

        self.event_bus.publish(JobStarted(job=job))
        start_time = time.monotonic()

        try:
            status = self.ffmpeg_adapter.convert(job, run_config, self._cancel_event)
        except InvocationError as e:
            return self._record_failure(job, state, e.message)
        except Exception as e:
            self.logger.exception(f"Unexpected error converting {job.source_path}")
            return self._record_failure(job, state, str(e) or type(e).__name__)

        if status == JobStatus.INTERRUPTED:
            self._publish_interrupted(job, state)
            return JobStatus.INTERRUPTED

        elapsed = time.monotonic() - start_time
        completed = state.mark_succeeded(job)
        if self.debug:
            self.logger.debug(f"PROCESS_END: {filename} status=completed elapsed={elapsed:.2f}s")
        self.event_bus.publish(JobCompleted(job=job, duration_seconds=elapsed))
        self.event_bus.publish(ProgressUpdated(completed=completed, total=state.total, file_name=filename))
        return JobStatus.COMPLETED

    def _record_failure(self, job: ConversionJob, state: RunState, message: str) -> JobStatus:
        completed = state.mark_failed(job, message)
        self.logger.error(f"Conversion failed: {job.source_path}: {message}")
        self.event_bus.publish(JobFailed(job=job, error_message=message))
        self.event_bus.publish(ProgressUpdated(
            completed=completed, total=state.total, file_name=job.source_path.name, error=message
        ))
        return JobStatus.FAILED

    def _publish_interrupted(self, job: ConversionJob, state: RunState) -> None:
        self.event_bus.publish(JobInterrupted(job=job))
        self.event_bus.publish(ProgressUpdated(
            completed=state.completed.value, total=state.total, file_name=job.source_path.name
        ))

    def _finalize(self, run_config: RunConfig, state: RunState, duration: float) -> RunReport:
        completed, remaining = state.snapshot()
        failures = state.failures

        if self._cancel_event.is_set() and remaining:
            checkpoint = Checkpoint.from_run(
                run_config,
                total_files=completed + len(remaining),
                remaining=remaining,
            )
            self.checkpoint_store.save(checkpoint)
            self.logger.info(
                f"Run cancelled: completed={completed}/{checkpoint.total_files}, "
                f"remaining={len(remaining)}, failed={len(failures)}"
            )
            return RunReport(
                phase=RunPhase.CANCELLED,
                total=checkpoint.total_files,
                completed=completed,
                remaining=len(remaining),
                failures=failures,
                duration_seconds=duration,
                checkpoint_saved=True,
            )

        self.checkpoint_store.delete()
        self.logger.info(
            f"Run completed: completed={completed}/{state.total}, failed={len(failures)}, "
            f"elapsed={duration:.1f}s"
        )
        return RunReport(
            phase=RunPhase.COMPLETED,
            total=state.total,
            completed=completed,
            remaining=len(remaining),
            failures=failures,
            duration_seconds=duration,
        )
