import logging
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.box import ROUNDED
from rich.table import Table

from graphguard.domain.interfaces.user_interface import UserInterface

logger = logging.getLogger(__name__)

STATE_STYLES = {
    'closed': 'bold green',
    'half_open': 'bold yellow',
    'open': 'bold red',
}


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_table(self, title: str, columns: Sequence[str], rows: List[Sequence[Any]]) -> None:
        if not rows:
            self.display_info(f"{title}: no results.")
            return
        table = Table(title=title, box=ROUNDED, header_style="bold cyan")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(_cell(v) for v in row))
        self._console.print(table)
        self._console.print(f"[dim]{len(rows)} row(s)[/dim]")

    def display_record(self, title: str, record: Dict[str, Any]) -> None:
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column(style="bold")
        table.add_column()
        for key, value in record.items():
            table.add_row(key, _cell(value))
        self._console.print(Panel(table, title=title, box=ROUNDED, border_style="cyan"))

    def display_status(self, status: Dict[str, Any], show_counters: bool = True) -> None:
        breaker = status.get('circuit_breaker', {})
        limiter = status.get('rate_limiter', {})
        retry = status.get('retry', {})

        title = "Resilience status" if show_counters else "Resilience settings"
        table = Table(box=ROUNDED, show_header=True, header_style="bold cyan", title=title)
        table.add_column("Component")
        table.add_column("Setting / counter" if show_counters else "Setting")
        table.add_column("Value")
        table.add_row("Circuit breaker", "opens after", f"{breaker.get('failure_threshold')} consecutive failures")
        table.add_row("", "recovery timeout", f"{breaker.get('recovery_timeout')}s")
        if show_counters:
            state = breaker.get('state', 'unknown')
            style = STATE_STYLES.get(state, 'bold')
            table.add_row("", "state", f"[{style}]{state}[/{style}]")
            table.add_row("", "consecutive failures", f"{breaker.get('failure_count')}/{breaker.get('failure_threshold')}")
            table.add_row("", "retry after (s)", f"{breaker.get('retry_after', 0.0):.1f}")
            table.add_row("", "successes / failures / rejected",
                          f"{breaker.get('total_successes')} / {breaker.get('total_failures')} / {breaker.get('rejected_calls')}")
        table.add_row("Rate limiter", "limit", f"{limiter.get('max_requests')} per {limiter.get('time_window')}s")
        if show_counters:
            table.add_row("", "in window", _cell(limiter.get('in_window')))
            table.add_row("", "granted / deferred", f"{limiter.get('total_granted')} / {limiter.get('total_deferred')}")
        table.add_row("Retry", "max retries", _cell(retry.get('max_retries')))
        table.add_row("", "backoff", f"{retry.get('initial_delay')}s x{retry.get('factor')} (cap {retry.get('max_delay')}s)")
        self._console.print(table)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        logger.debug(f"display_error: {error_message}")
        self._console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self._console.print(f"[bold yellow]Warning:[/bold yellow] {warning_message}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self._console.print(f"[cyan]{info_message}[/cyan]")
