"""Rich output helpers: tables and status display."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from vulnfeed.plugins.base import DetectedPackage, LanguagePlugin

console = Console()


def status_style(status: str) -> str:
    return {
        "completed": "green",
        "running": "yellow",
        "error": "red",
        "medium": "yellow",
        "low": "dim",
    }.get(status, "white")


def fmt_date(value: str | datetime | None) -> str:
    if not value:
        return "—"
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except ValueError:
        return value


def fmt_duration(seconds: float | None) -> str:
    if seconds is None:
        return "—"
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{seconds / 60:.1f}m"


def sources_table(items: list[dict[str, Any]]) -> Table:
    table = Table(
        title=f"Sync sources ({len(items)})",
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
        show_lines=False,
    )
    table.add_column("Source", style="bold", no_wrap=True)
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Packages", justify="right")
    table.add_column("Last sync", style="dim")
    table.add_column("Last full sync", style="dim")
    table.add_column("Duration", justify="right", style="dim")
    table.add_column("Error")

    for s in items:
        status = s.get("status", "?")
        table.add_row(
            s.get("source", ""),
            Text(status, style=status_style(status)),
            f"{s.get('advisory_count') or 0:,}",
            f"{s.get('package_count') or 0:,}",
            fmt_date(s.get("last_sync_at")),
            fmt_date(s.get("last_full_sync_at")),
            fmt_duration(s.get("duration_seconds")),
            (s.get("error_message") or "")[:60],
        )
    return table


def stats_summary(data: dict[str, Any]) -> None:
    console.print(sources_table(data.get("sources", [])))
    console.print(
        f"  [dim]Advisories[/dim] {data.get('total_advisories', 0):,}   "
        f"[dim]CVEs[/dim] {data.get('total_cves', 0):,}"
    )
    if data.get("sync_in_progress"):
        console.print("  [yellow]A sync cycle is currently running[/yellow]")


def packages_table(packages: list[DetectedPackage]) -> Table:
    table = Table(
        title=f"Detected packages ({len(packages)})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Name", style="bold")
    table.add_column("Ecosystem")
    table.add_column("purl", style="dim")

    for p in packages:
        table.add_row(p.name, p.ecosystem, p.purl)
    return table


def plugins_table(plugins: list[LanguagePlugin]) -> Table:
    table = Table(
        title=f"Language plugins ({len(plugins)})",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("ID", style="bold")
    table.add_column("Language")
    table.add_column("Extensions")

    for p in plugins:
        meta = p.metadata
        table.add_row(str(meta.order), meta.id, meta.label, " ".join(meta.extensions))
    return table
