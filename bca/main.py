import logging
import shutil
import typer
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt

from bca.config.loader import default_checkpoint_path, load_config, resolve_ffmpeg_path, save_config
from bca.config.models import AppConfig
from bca.config.quality import QUALITY_MAX, QUALITY_MIN
from bca.domain.errors import BcaError, ConfigurationError
from bca.domain.models import RunPhase, RunReport
from bca.infrastructure.checkpoint import CheckpointStore
from bca.infrastructure.event_bus import EventBus
from bca.infrastructure.ffmpeg import FFmpegAdapter
from bca.infrastructure.logging import setup_logging
from bca.pipeline.orchestrator import Orchestrator
from bca.pipeline.session import ConversionSession
from bca.ui.dashboard import Dashboard
from bca.ui.keyboard import KeyboardListener
from bca.ui.manager import UIManager
from bca.ui.prompts import ConsolePrompter
from bca.ui.state import UIState

app = typer.Typer(help="BCA (Batch Convert Audio) - parallel, resumable ffmpeg conversion")


def resolve_ffmpeg(
    config: AppConfig,
    config_path: Path,
    override: Optional[str],
    console: Console,
) -> Path:
    """Finds ffmpeg from --ffmpeg, the config file, or a prompt.

    A newly resolved path is written back to the config file.
    """
    if override:
        path = resolve_ffmpeg_path(override)
        if path is None:
            raise ConfigurationError(f"Invalid FFmpeg path: {override}")
    else:
        path = resolve_ffmpeg_path(config.general.ffmpeg_path)
        if path is not None:
            return path
        answer = Prompt.ask("FFmpeg path", default=shutil.which("ffmpeg"), console=console)
        path = resolve_ffmpeg_path(answer)
        if path is None:
            raise ConfigurationError(f"Invalid FFmpeg path: {answer}")

    if str(path) != config.general.ffmpeg_path:
        config.general.ffmpeg_path = str(path)
        save_config(config, config_path)
        logging.getLogger(__name__).info(f"FFmpeg path saved to {config_path}: {path}")
    return path


def print_report(console: Console, report: RunReport) -> None:
    if report.cancelled:
        console.print(
            f"\n[bold yellow]Stopped, progress saved[/] "
            f"({report.remaining} of {report.total} files remaining). Run again to resume."
        )
        return

    if report.failures:
        console.print("\n[bold red]Some files failed:[/]")
        for failure in report.failures:
            console.print(f"[red]- {escape(str(failure.path))}: {escape(failure.error_message)}[/]")

    console.print("\n[bold green]DONE[/]")


@app.command()
def convert(
    input_dir: Optional[Path] = typer.Argument(None, help="Directory with audio files (prompted if omitted)"),
    config_path: Path = typer.Option(Path("conf/bca.yaml"), "--config", "-c", help="Path to YAML config"),
    checkpoint_path: Optional[Path] = typer.Option(None, "--checkpoint", help="Checkpoint file (overrides config)"),
    ffmpeg: Optional[str] = typer.Option(None, "--ffmpeg", help="ffmpeg executable or its directory (saved to config)"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory"),
    target_format: Optional[str] = typer.Option(None, "--format", "-f", help="Target format, e.g. mp3"),
    quality: Optional[int] = typer.Option(
        None, "--quality", "-q", min=QUALITY_MIN, max=QUALITY_MAX, help="Output quality (30-100)"
    ),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Parallel conversions"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every confirmation"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert every supported audio file under a directory with ffmpeg."""
    console = Console()
    console.print("[bold cyan]Batch Audio Converter[/]\n")

    try:
        config = load_config(config_path)
        debug = debug or config.general.debug
        log_path_value = log_path or (Path(config.general.log_path) if config.general.log_path else None)
        logger = setup_logging(config_path.parent, debug=debug, log_path=log_path_value)

        ffmpeg_path = resolve_ffmpeg(config, config_path, ffmpeg, console)
        console.print(Panel(str(ffmpeg_path), title="[green]FFmpeg loaded[/]", border_style="green"))
        logger.info(f"BCA started: ffmpeg={ffmpeg_path}, config={config_path}")

        bus = EventBus()
        store = CheckpointStore(checkpoint_path or default_checkpoint_path(config, config_path))
        adapter = FFmpegAdapter(ffmpeg_path, job_timeout_s=config.general.job_timeout_s, debug=debug)
        prompter = ConsolePrompter(
            config.general,
            console=console,
            input_dir=input_dir,
            output_dir=output_dir,
            target_format=target_format,
            quality=quality,
            threads=threads,
            assume_yes=yes,
        )
        session = ConversionSession(
            prompter=prompter,
            checkpoint_store=store,
            orchestrator_factory=lambda: Orchestrator(bus, adapter, store, debug=debug),
            event_bus=bus,
            extensions=config.general.extensions,
        )

        plan = session.prepare()
        if plan is None:
            if session.phase == RunPhase.COMPLETED:
                console.print("[red]No supported audio files found[/]")
            logger.info("Nothing to run, exiting")
            raise typer.Exit(code=0)

        ui_state = UIState()
        UIManager(bus, ui_state)
        dashboard = Dashboard(ui_state, console=console)
        keyboard = KeyboardListener(bus)

        keyboard.start()
        try:
            with dashboard:
                report = session.execute(plan)
        finally:
            keyboard.stop()

        print_report(console, report)

    except typer.Exit:
        raise

    except KeyboardInterrupt:
        typer.secho("\nAborted by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except BcaError as e:
        logging.getLogger(__name__).error(f"{type(e).__name__}: {e}")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        logging.getLogger(__name__).exception("Fatal error")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
