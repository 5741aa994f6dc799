"""Interactive questions for a run, answered on the terminal with rich.prompt.

Values given on the command line are used as-is (after validation) and the
matching question is skipped; ``assume_yes`` answers every confirmation.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt

from bca.config.models import GeneralConfig, available_cores, normalize_extension, validate_threads
from bca.config.quality import QUALITY_MAX, QUALITY_MIN, percent_to_ffmpeg_quality, validate_quality_percent
from bca.domain.errors import ConfigurationError
from bca.domain.models import Checkpoint
from bca.pipeline.session import ConversionOptions, RunPlan


def clean_path_input(value: str) -> Path:
    """Strips whitespace and the quotes a drag-and-dropped path brings along."""
    return Path(value.strip().strip('"').strip("'")).expanduser()


def _same_dir(a: Path, b: Path) -> bool:
    return Path(a).expanduser().resolve() == Path(b).expanduser().resolve()


class ConsolePrompter:
    def __init__(
        self,
        general: GeneralConfig,
        console: Optional[Console] = None,
        input_dir: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        target_format: Optional[str] = None,
        quality: Optional[int] = None,
        threads: Optional[int] = None,
        assume_yes: bool = False,
    ):
        self.general = general
        self.console = console or Console()
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.target_format = target_format
        self.quality = quality
        self.threads = threads
        self.assume_yes = assume_yes
        self.logger = logging.getLogger(__name__)

    def _confirm(self, question: str) -> bool:
        if self.assume_yes:
            return True
        return Confirm.ask(question, default=True, console=self.console)

    def confirm_resume(self, checkpoint: Checkpoint) -> bool:
        done = checkpoint.total_files - len(checkpoint.remaining_files)
        self.console.print(Panel(
            f"[bold]Input:[/] {checkpoint.input_dir}\n"
            f"[bold]Output:[/] {checkpoint.output_dir}\n"
            f"[bold]Format:[/] {checkpoint.target_format} (ffmpeg q={checkpoint.quality})\n"
            f"[bold]Threads:[/] {checkpoint.cores}\n"
            f"[bold]Progress:[/] {done}/{checkpoint.total_files} "
            f"({len(checkpoint.remaining_files)} remaining)",
            title="[yellow]Unfinished conversion found[/]",
            border_style="yellow",
        ))
        conflicts = self._resume_conflicts(checkpoint)
        if conflicts:
            self.logger.warning(f"Resuming ignores command line values: {'; '.join(conflicts)}")
            self.console.print("[yellow]Resuming keeps the saved settings; these command line values are ignored:[/]")
            for conflict in conflicts:
                self.console.print(f"[yellow]  - {escape(conflict)}[/]")
        return self._confirm("Resume previous conversion?")

    def _resume_conflicts(self, checkpoint: Checkpoint) -> List[str]:
        """Presets that differ from the settings stored in the checkpoint."""
        conflicts = []
        if self.input_dir is not None and not _same_dir(self.input_dir, checkpoint.input_dir):
            conflicts.append(f"input {self.input_dir} (saved: {checkpoint.input_dir})")
        if self.output_dir is not None and not _same_dir(self.output_dir, checkpoint.output_dir):
            conflicts.append(f"output {self.output_dir} (saved: {checkpoint.output_dir})")
        if self.target_format is not None and normalize_extension(self.target_format) != checkpoint.target_format:
            conflicts.append(f"format {self.target_format} (saved: {checkpoint.target_format})")
        if self.quality is not None and percent_to_ffmpeg_quality(self.quality) != checkpoint.quality:
            conflicts.append(f"quality {self.quality} (saved: ffmpeg q={checkpoint.quality})")
        if self.threads is not None and self.threads != checkpoint.cores:
            conflicts.append(f"threads {self.threads} (saved: {checkpoint.cores})")
        return conflicts

    def ask_directories(self) -> Tuple[Path, Path]:
        input_dir = self.input_dir or clean_path_input(Prompt.ask("INPUT directory", console=self.console))
        output_dir = self.output_dir or clean_path_input(Prompt.ask("OUTPUT directory", console=self.console))
        return input_dir, output_dir

    def confirm_directories(self, input_dir: Path, output_dir: Path) -> bool:
        self.console.print(Panel(
            f"[bold]Input:[/] {input_dir}\n[bold]Output:[/] {output_dir}",
            title="Confirm directories",
            border_style="yellow",
        ))
        return self._confirm("Continue?")

    def ask_options(self, files_found: int, extensions: List[str]) -> ConversionOptions:
        self.console.print(f"Found [green]{files_found}[/] audio files")
        self.console.print(f"Convertible extensions: [cyan]{', '.join(extensions)}[/]\n")

        return ConversionOptions(
            threads=self._ask_threads(),
            target_format=self._ask_format(),
            quality_percent=self._ask_quality(),
        )

    def _ask_threads(self) -> int:
        if self.threads is not None:
            try:
                return validate_threads(self.threads)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        default = self.general.threads or available_cores()
        default = min(default, available_cores())
        while True:
            value = IntPrompt.ask("CPU threads to use", default=default, console=self.console)
            try:
                return validate_threads(value)
            except ValueError as e:
                self.console.print(f"[red]{e}[/]")

    def _ask_format(self) -> str:
        choices = self.general.target_formats
        if self.target_format is not None:
            fmt = normalize_extension(self.target_format)
            if fmt not in choices:
                raise ConfigurationError(f"Unsupported target format {fmt}. Choose one of: {', '.join(choices)}")
            return fmt
        return Prompt.ask("Target output format", choices=choices, default=choices[0], console=self.console)

    def _ask_quality(self) -> int:
        if self.quality is not None:
            try:
                return validate_quality_percent(self.quality)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        while True:
            value = IntPrompt.ask(
                f"Output quality ({QUALITY_MIN}-{QUALITY_MAX})",
                default=self.general.default_quality,
                console=self.console,
            )
            try:
                return validate_quality_percent(value)
            except ValueError as e:
                self.console.print(f"[red]{e}[/]")

    def confirm_start(self, plan: RunPlan) -> bool:
        cfg = plan.run_config
        quality_line = (
            f"{plan.quality_percent} (ffmpeg q={cfg.quality})"
            if plan.quality_percent is not None
            else f"ffmpeg q={cfg.quality}"
        )
        self.console.print(Panel(
            f"[bold]Threads:[/] {cfg.threads}\n"
            f"[bold]Quality:[/] {quality_line}\n"
            f"[bold]Target format:[/] {cfg.target_format}\n"
            f"[bold]Files to convert:[/] {len(plan.jobs)}",
            title="[yellow]Conversion summary[/]",
            border_style="yellow",
        ))
        return self._confirm("Start conversion?")
