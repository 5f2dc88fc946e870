from datetime import datetime
from typing import Optional, Tuple
from rich.console import Console
from rich.markup import escape
from clipbatch.domain.events import LogEmitted, MergeCompleted, StatusChanged
from clipbatch.domain.models import PipelineStatus, Severity
from clipbatch.infrastructure.event_bus import EventBus

SEVERITY_STYLES = {
    Severity.INFO: ("•", "white"),
    Severity.SUCCESS: ("✓", "green"),
    Severity.WARNING: ("!", "yellow"),
    Severity.ERROR: ("✗", "red"),
    Severity.DEBUG: ("·", "dim"),
}


def format_status(status: PipelineStatus) -> str:
    """One-line markup summary of a PipelineStatus."""
    indicator = "[green]●[/] watching" if status.monitoring else "[red]●[/] stopped"
    activity = escape(status.current_activity)
    if status.progress_percent is not None and status.current_activity != "idle":
        activity = f"{activity} {status.progress_percent:.0f}%"
    return (
        f"{indicator} • groups {status.source_group_count} "
        f"(ready {status.ready_group_count}) • queue {status.queue_depth} • {activity}"
    )


class ConsoleReporter:
    """Subscribes to EventBus and prints log lines and status changes."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None, show_debug: bool = False):
        self.bus = bus
        self.console = console or Console()
        self.show_debug = show_debug
        self._last_status: Optional[Tuple] = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(LogEmitted, self.on_log)
        self.bus.subscribe(StatusChanged, self.on_status)
        self.bus.subscribe(MergeCompleted, self.on_merge_completed)

    def on_log(self, event: LogEmitted):
        if event.severity == Severity.DEBUG and not self.show_debug:
            return
        icon, style = SEVERITY_STYLES.get(event.severity, SEVERITY_STYLES[Severity.INFO])
        stamp = datetime.now().strftime("%H:%M:%S")
        self.console.print(f"[dim]{stamp}[/] [{style}]{icon} {escape(event.message)}[/]")

    def on_status(self, event: StatusChanged):
        status = event.status
        # Progress ticks alone don't reprint the line
        key = (
            status.monitoring,
            status.source_group_count,
            status.ready_group_count,
            status.queue_depth,
            status.current_activity,
        )
        if key == self._last_status:
            return
        self._last_status = key
        self.console.print(f"[dim]{format_status(status)}[/]")

    def on_merge_completed(self, event: MergeCompleted):
        self.console.print(
            f"[bold green]Archive ready:[/] {escape(str(event.archive_path))} "
            f"({event.clip_count} clips from {len(event.groups)} groups)"
        )
