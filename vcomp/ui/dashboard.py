import threading
import time
from typing import Optional
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text
from rich.box import ROUNDED, SIMPLE
from vcomp.domain.models import JobStatus
from vcomp.ui.state import UIState

STATUS_STYLES = {
    JobStatus.WAITING: ("…", "dim"),
    JobStatus.RUNNING: ("▶", "cyan"),
    JobStatus.PAUSED: ("⏸", "yellow"),
    JobStatus.COMPLETED: ("✓", "green"),
    JobStatus.FAILED: ("✗", "red"),
    JobStatus.CANCELLED: ("■", "magenta"),
}


class Dashboard:
    """Live terminal view of the job queue."""

    def __init__(self, state: UIState, console: Optional[Console] = None, refresh_interval: float = 0.5):
        self.state = state
        self.console = console or Console()
        self.refresh_interval = refresh_interval
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    def _sanitize_name(self, name: str, max_len: int = 40) -> str:
        if len(name) <= max_len:
            return name
        return name[: max_len - 1] + "…"

    def _render_jobs(self) -> Table:
        table = Table(box=SIMPLE, expand=True, show_edge=False)
        table.add_column("", width=2)
        table.add_column("File", ratio=3, no_wrap=True)
        table.add_column("Preset", ratio=1, no_wrap=True)
        table.add_column("Progress", ratio=2)
        table.add_column("%", justify="right", width=6)
        table.add_column("Speed", justify="right", width=7)
        table.add_column("ETA", justify="right", width=8)

        for view in self.state.job_views():
            icon, style = STATUS_STYLES[view.status]
            detail = view.eta or ""
            if view.status == JobStatus.FAILED and view.error:
                detail = "error"
            table.add_row(
                Text(icon, style=style),
                Text(self._sanitize_name(view.name), style=style),
                view.preset_id,
                ProgressBar(total=100.0, completed=view.progress, complete_style=style),
                f"{view.progress:5.1f}",
                view.speed or "",
                detail,
            )
        return table

    def _render_summary(self) -> Text:
        state = self.state
        elapsed = int(time.time() - state.start_time.timestamp())
        return Text.assemble(
            ("Done ", "bold"), f"{state.done_count}/{state.total_count}  ",
            ("✓ ", "green"), f"{state.completed_count}  ",
            ("✗ ", "red"), f"{state.failed_count}  ",
            ("■ ", "magenta"), f"{state.cancelled_count}  ",
            ("Parallel ", "bold"), f"{state.max_parallel_jobs}  ",
            ("Elapsed ", "bold"), f"{elapsed // 60:02d}:{elapsed % 60:02d}",
        )

    def create_display(self) -> RenderableType:
        logs = Text("\n".join(self.state.recent_logs)) if self.state.recent_logs else Text("—", style="dim")
        return Group(
            Panel(self._render_summary(), box=ROUNDED, title="vcomp"),
            Panel(self._render_jobs(), box=ROUNDED, title="Jobs"),
            Panel(logs, box=ROUNDED, title="Log"),
        )

    def _refresh_loop(self):
        while not self._stop_refresh.wait(self.refresh_interval):
            if self._live:
                with self._ui_lock:
                    self._live.update(self.create_display())

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
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
