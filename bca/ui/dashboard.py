import threading
import time
from typing import Optional

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from bca.ui.state import UIState


class Dashboard:
    """Live progress panel; read-only view of UIState."""

    def __init__(self, state: UIState, console: Optional[Console] = None, max_active_files: int = 8):
        self.state = state
        self.console = console or Console()
        self.max_active_files = max_active_files
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    # --- Formatters ---

    def format_time(self, seconds: Optional[float]) -> str:
        """Format time: mm:ss, or h:mm:ss past an hour."""
        if seconds is None:
            return "--:--"
        seconds = int(seconds)
        if seconds < 3600:
            return f"{seconds // 60:02d}:{seconds % 60:02d}"
        return f"{seconds // 3600}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"

    def _sanitize_filename(self, filename: str, max_len: int = 40) -> str:
        if len(filename) <= max_len:
            return filename
        return filename[: max_len - 1] + "…"

    # --- Rendering ---

    def _generate_status(self) -> Text:
        with self.state._lock:
            if self.state.finished:
                if self.state.cancelled:
                    return Text("STOPPED - progress saved", style="bold yellow")
                return Text("FINISHED", style="bold green")
            if self.state.shutdown_requested:
                return Text("STOPPING - waiting for active jobs", style="yellow")
            return Text("Converting | press S to stop and save progress", style="cyan")

    def _generate_progress(self) -> RenderableType:
        with self.state._lock:
            total = self.state.total
            done = self.state.completed_count
            pct = self.state.progress_percent
            last = self.state.last_job_seconds
            avg = self.state.average_seconds()
            elapsed = self.state.elapsed_seconds()

            bar = ProgressBar(total=max(total, 1), completed=min(done, max(total, 1)), width=None)
            grid = Table.grid(padding=(0, 1))
            grid.add_row(bar, f"{done}/{total}", "•", f"{pct:.1f}%", "•", self.format_time(elapsed))

            timing = Text(
                f"Last {self.format_time(last)} | Avg {self.format_time(avg)} | "
                f"Threads {self.state.current_threads}"
            )
            if self.state.failed_count:
                timing.append(f" | Failed {self.state.failed_count}", style="red")
            if self.state.interrupted_count:
                timing.append(f" | Interrupted {self.state.interrupted_count}", style="yellow")
            if self.state.resumed:
                timing.append(" | Resumed", style="magenta")
        return Group(grid, timing)

    def _generate_active(self) -> RenderableType:
        with self.state._lock:
            names = list(self.state.active_files.keys())
            recent = list(self.state.recent_files)
        shown = names[: self.max_active_files]
        lines = [Text(f"  ▸ {self._sanitize_filename(name)}", style="dim") for name in shown]
        if len(names) > len(shown):
            lines.append(Text(f"  … +{len(names) - len(shown)} more", style="dim"))
        if recent:
            done = ", ".join(self._sanitize_filename(name, max_len=24) for name in recent)
            lines.append(Text(f"Done: {done}", style="green"))
        if not lines:
            return Text("")
        return Group(*lines)

    def create_display(self) -> Panel:
        last_action = self.state.last_action
        rows = [self._generate_status(), self._generate_progress(), self._generate_active()]
        if last_action:
            rows.append(Text(last_action, style="italic"))
        return Panel(Group(*rows), title="BATCH AUDIO CONVERTER", border_style="cyan")

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                display = self.create_display()
                with self._ui_lock:
                    self._live.update(display)
            time.sleep(0.25)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final frame shows FINISHED / STOPPED
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
