"""
Rich console dashboard for the gesture simulator.

Shows stored custom gestures, signature training progress, request counters
and an event log.
"""

import asyncio
import time
from typing import List, TYPE_CHECKING
from dataclasses import dataclass

from rich.align import Align
from rich.columns import Columns
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from ..virtual_engine_server import VirtualEngineServer


@dataclass
class DashboardState:
    """Current state of the dashboard display"""
    start_time: float
    refresh_rate_ms: int
    paused: bool = False


class RichDashboard:
    """
    Rich console dashboard for the simulated engine.
    """

    def __init__(
        self,
        engine_server: "VirtualEngineServer",
        refresh_rate_ms: int = 500,
        no_color: bool = False
    ):
        self.engine_server = engine_server
        self.console = Console(force_terminal=not no_color)
        self.state = DashboardState(
            start_time=time.time(),
            refresh_rate_ms=refresh_rate_ms
        )
        self.event_log: List[str] = []
        self.max_log_entries = 50

    def _create_header(self) -> Panel:
        uptime = time.time() - self.state.start_time
        uptime_str = f"{int(uptime//3600):02d}:{int((uptime%3600)//60):02d}:{int(uptime%60):02d}"

        title_text = Text("Gesture Simulator Dashboard", style="bold blue")
        status_text = Text(f"Uptime: {uptime_str}", style="dim")
        if self.state.paused:
            status_text.append(" | PAUSED", style="bold red")

        return Panel(
            Columns([Align.left(title_text), Align.right(status_text)]),
            title="Status", border_style="blue"
        )

    def _create_gesture_panel(self) -> Panel:
        engine = self.engine_server.engine
        if not engine.custom_gestures and not engine.signatures:
            return Panel(
                Align.center(Text("Nothing trained yet", style="dim")),
                title="Trained Gestures",
                border_style="yellow"
            )

        table = Table(show_header=True, header_style="bold magenta", box=None)
        table.add_column("Label", style="cyan")
        table.add_column("Kind", width=10)
        table.add_column("Detail", width=14)

        for label, exemplars in sorted(engine.custom_gestures.items(), key=lambda kv: str(kv[0])):
            table.add_row(str(label), "custom", f"{len(exemplars)} exemplars")
        for index, signature in sorted(engine.signatures.items()):
            style = "green" if signature.complete else "yellow"
            table.add_row(f"#{index}", "signature", Text(f"{signature.progress:.0%}", style=style))

        return Panel(table, title="Trained Gestures", border_style="green")

    def _create_system_info_panel(self) -> Panel:
        info_table = Table(show_header=False, box=None, pad_edge=False)
        info_table.add_column("Key", style="bold")
        info_table.add_column("Value")

        engine = self.engine_server.engine
        info_table.add_row("Clients:", str(len(self.engine_server.clients)))
        info_table.add_row("Latency:", f"{self.engine_server.global_latency_ms:.1f}ms")
        info_table.add_row("Tries left:", str(engine.tries_left))
        info_table.add_row("Refresh:", f"{self.state.refresh_rate_ms}ms")
        for op, count in sorted(engine.request_counts.items()):
            info_table.add_row(f"{op}:", str(count))

        return Panel(info_table, title="System", border_style="magenta")

    def _create_event_log_panel(self) -> Panel:
        log_text = Text()
        recent_entries = self.event_log[-20:]
        for entry in recent_entries:
            log_text.append(entry + "\n", style="dim")
        if not recent_entries:
            log_text.append("No events yet...", style="dim italic")
        return Panel(log_text, title="Event Log", border_style="white")

    def add_event(self, message: str):
        """Add an event to the log"""
        timestamp = time.strftime("%H:%M:%S")
        self.event_log.append(f"[{timestamp}] {message}")
        if len(self.event_log) > self.max_log_entries:
            self.event_log.pop(0)

    def render(self) -> List[Panel]:
        return [
            self._create_header(),
            Columns([self._create_gesture_panel(), self._create_system_info_panel()], expand=True),
            self._create_event_log_panel(),
        ]

    async def run(self):
        """Run the dashboard with simple ANSI positioning"""
        self.add_event("Dashboard started")
        print("\033[?25l", end="")  # Hide cursor
        print("\033[2J", end="")    # Clear screen
        try:
            while True:
                if not self.state.paused:
                    print("\033[H", end="")
                    with self.console.capture() as capture:
                        for renderable in self.render():
                            self.console.print(renderable)
                    print(capture.get(), end="")
                await asyncio.sleep(self.state.refresh_rate_ms / 1000.0)
        finally:
            print("\033[?25h", end="")  # Restore cursor

    def toggle_pause(self):
        self.state.paused = not self.state.paused
        self.add_event(f"Dashboard {'paused' if self.state.paused else 'resumed'}")

    def set_refresh_rate(self, rate_ms: int):
        self.state.refresh_rate_ms = max(50, min(2000, rate_ms))
        self.add_event(f"Refresh rate set to {self.state.refresh_rate_ms}ms")
