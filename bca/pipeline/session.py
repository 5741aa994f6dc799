"""Run session: the state machine around one orchestrator run.

    SCANNING -> AWAITING_CONFIRMATION -> RUNNING -> COMPLETED | CANCELLED

A checkpoint found at startup is offered for resume first. Declining it
deletes the checkpoint and goes back to SCANNING, so a rejected run is never
offered again. All questions go through a Prompter; the session itself does
no terminal I/O.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Tuple
from pydantic import BaseModel, Field

from bca.config.quality import percent_to_ffmpeg_quality, validate_quality_percent
from bca.domain.errors import ConfigurationError
from bca.domain.events import DiscoveryFinished
from bca.domain.models import Checkpoint, ConversionJob, RunConfig, RunPhase, RunReport
from bca.infrastructure.checkpoint import CheckpointStore
from bca.infrastructure.event_bus import EventBus
from bca.infrastructure.file_scanner import FileScanner
from bca.pipeline.orchestrator import Orchestrator


class ConversionOptions(BaseModel):
    threads: int = Field(ge=1)
    target_format: str
    quality_percent: int


class RunPlan(BaseModel):
    """Everything the orchestrator needs to start RUNNING."""

    run_config: RunConfig
    jobs: List[ConversionJob]
    total: int
    resumed: bool = False
    quality_percent: Optional[int] = None  # unknown when resumed
    extensions_found: List[str] = Field(default_factory=list)


class Prompter(Protocol):
    def confirm_resume(self, checkpoint: Checkpoint) -> bool: ...

    def ask_directories(self) -> Tuple[Path, Path]: ...

    def confirm_directories(self, input_dir: Path, output_dir: Path) -> bool: ...

    def ask_options(self, files_found: int, extensions: List[str]) -> ConversionOptions: ...

    def confirm_start(self, plan: RunPlan) -> bool: ...


class ConversionSession:
    def __init__(
        self,
        prompter: Prompter,
        checkpoint_store: CheckpointStore,
        orchestrator_factory: Callable[[], Orchestrator],
        event_bus: EventBus,
        extensions: List[str],
    ):
        self.prompter = prompter
        self.checkpoint_store = checkpoint_store
        self.orchestrator_factory = orchestrator_factory
        self.event_bus = event_bus
        self.extensions = extensions
        self.phase = RunPhase.SCANNING
        self.logger = logging.getLogger(__name__)

    def prepare(self) -> Optional[RunPlan]:
        """Resolves the job set. Returns None when there is nothing to run."""
        self.phase = RunPhase.SCANNING
        checkpoint = self.checkpoint_store.load()

        if checkpoint is not None:
            self.phase = RunPhase.AWAITING_CONFIRMATION
            if self.prompter.confirm_resume(checkpoint):
                return self._plan_from_checkpoint(checkpoint)
            self.checkpoint_store.delete()
            self.logger.info("Resume declined, checkpoint removed; starting a fresh scan")
            self.phase = RunPhase.SCANNING

        return self._plan_fresh()

    def execute(self, plan: RunPlan) -> RunReport:
        self.phase = RunPhase.RUNNING
        orchestrator = self.orchestrator_factory()
        report = orchestrator.run(plan.run_config, plan.jobs, total=plan.total)
        self.phase = report.phase
        return report

    def _plan_from_checkpoint(self, checkpoint: Checkpoint) -> RunPlan:
        run_config = checkpoint.to_run_config()
        jobs = [ConversionJob.for_source(Path(p), run_config) for p in checkpoint.remaining_files]
        self.logger.info(
            f"Resuming from checkpoint: total={checkpoint.total_files}, remaining={len(jobs)}"
        )
        self.event_bus.publish(DiscoveryFinished(
            files_found=len(jobs), input_dir=run_config.input_dir, resumed=True
        ))
        return RunPlan(
            run_config=run_config,
            jobs=jobs,
            total=checkpoint.total_files,
            resumed=True,
        )

    def _plan_fresh(self) -> Optional[RunPlan]:
        input_dir, output_dir = self.prompter.ask_directories()
        input_dir = input_dir.expanduser().resolve()
        output_dir = output_dir.expanduser().resolve()
        if not input_dir.is_dir():
            raise ConfigurationError(f"Input directory not found: {input_dir}")
        if not self.prompter.confirm_directories(input_dir, output_dir):
            return None
        output_dir.mkdir(parents=True, exist_ok=True)

        scanner = FileScanner(self.extensions, exclude_dirs=[output_dir])
        files = list(scanner.scan(input_dir))
        extensions_found = scanner.extensions_found(files)
        self.logger.info(f"Scan finished: {input_dir} files={len(files)} extensions={extensions_found}")
        self.event_bus.publish(DiscoveryFinished(
            files_found=len(files), extensions=extensions_found, input_dir=input_dir
        ))

        if not files:
            self.phase = RunPhase.COMPLETED
            return None

        options = self.prompter.ask_options(len(files), extensions_found)
        quality_percent = validate_quality_percent(options.quality_percent)
        run_config = RunConfig(
            input_dir=input_dir,
            output_dir=output_dir,
            target_format=options.target_format,
            quality=percent_to_ffmpeg_quality(quality_percent),
            threads=options.threads,
        )
        plan = RunPlan(
            run_config=run_config,
            jobs=[ConversionJob.for_source(path, run_config) for path in files],
            total=len(files),
            quality_percent=quality_percent,
            extensions_found=extensions_found,
        )

        self.phase = RunPhase.AWAITING_CONFIRMATION
        if not self.prompter.confirm_start(plan):
            return None
        return plan
