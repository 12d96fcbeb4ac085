"""CLI commands for import-statement scanning."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import click

from vulnfeed.cli.output import console, packages_table, plugins_table, status_style


@click.group("imports")
def imports_cmd() -> None:
    """Detect packages from source-code imports."""


@imports_cmd.command("scan")
@click.argument(
    "path", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print raw JSON")
def imports_scan(path: Path, as_json: bool) -> None:
    """Scan a source tree and list the packages its imports refer to.

    Example:

        vulnfeed imports scan ./my-project
    """
    from vulnfeed.services.import_scanner import scan_directory

    result = scan_directory(path)

    if as_json:
        click.echo(json.dumps(asdict(result), indent=2))
        return

    if not result.languages:
        console.print("[yellow]No languages detected above the confidence threshold.[/yellow]")
        return

    console.print(f"  [dim]Languages[/dim]  {', '.join(result.languages)}")
    console.print(f"  [dim]Imports[/dim]    {result.total_imports}")
    console.print(
        f"  [dim]Confidence[/dim] "
        f"[{status_style(result.confidence)}]{result.confidence}[/{status_style(result.confidence)}]"
    )
    if result.files_skipped:
        console.print(f"  [dim]Skipped[/dim]    {result.files_skipped} file(s) over the size limits")
    console.print(packages_table(result.packages))


@imports_cmd.command("languages")
def imports_languages() -> None:
    """List the registered language plugins."""
    from vulnfeed.core.registry import get_registry

    console.print(plugins_table(get_registry().all()))
