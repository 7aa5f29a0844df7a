"""Formatting utilities for consistent output across CLI commands."""

from rich.console import Group
from rich.markup import escape
from rich.table import Table

from proc_usage.models import ProcessUsage, ThreadUsage


def format_percent(value: float) -> str:
    """Format a percentage with two decimals (e.g. "12.50%")."""
    return f"{value:.2f}%"


def _thread_table(threads: list[ThreadUsage], max_threads: int) -> Table:
    """Thread rows sorted busiest first, truncated to max_threads."""
    table = Table(title=f"Threads ({len(threads)})", title_justify="left", box=None)
    table.add_column("TID", justify="right", style="cyan")
    table.add_column("CPU norm", justify="right")
    table.add_column("CPU abs", justify="right")

    busiest = sorted(threads, key=lambda t: t.cpu_percent_normalized, reverse=True)
    for thread in busiest[:max_threads]:
        table.add_row(
            f"{thread.tid:06d}",
            format_percent(thread.cpu_percent_normalized),
            format_percent(thread.cpu_percent),
        )
    hidden = len(threads) - max_threads
    if hidden > 0:
        table.add_row("…", f"[dim]{hidden} more[/]", "")
    return table


def render_usage(usage: ProcessUsage, max_threads: int = 20, indent: int = 0) -> Group:
    """Rich renderable for a process usage, its threads and its children."""
    pad = "  " * indent
    lines: list = [
        f"{pad}[bold]PID {usage.pid}[/]"
        + (f" [cyan]{escape(usage.name)}[/]" if usage.name else ""),
        f"{pad}  CPU normalized: {format_percent(usage.cpu_percent_normalized)}",
        f"{pad}  CPU absolute:   {format_percent(usage.cpu_percent)}",
        f"{pad}  Memory:         {usage.memory.megabytes:.3f} MB "
        f"({format_percent(usage.memory_percent)})",
    ]
    if usage.threads and max_threads > 0:
        lines.append(_thread_table(usage.threads, max_threads))
    for child in usage.children:
        lines.append(render_usage(child, max_threads=max_threads, indent=indent + 1))
    return Group(*lines)
