"""CLI commands for the vulnerability-database sync."""

from __future__ import annotations

import asyncio

import click

from vulnfeed.cli.output import console, stats_summary


def _auth_headers(ctx: click.Context) -> dict[str, str]:
    token = ctx.obj.get("token")
    if not token:
        console.print("[red]An admin token is required[/red] (--token or VULNFEED_TOKEN).")
        raise SystemExit(1)
    return {"Authorization": f"Bearer {token}"}


@click.group("sync")
def sync_cmd() -> None:
    """Vulnerability database synchronisation."""


@sync_cmd.command("run")
def sync_run() -> None:
    """Run one sync cycle in this process and wait for it to finish.

    Talks to the database directly; no API server is needed.
    """
    from vulnfeed.core.database import close_engine, get_session_factory
    from vulnfeed.sync.orchestrator import get_vuln_db_stats, run_sync_cycle

    async def _run():
        try:
            report = await run_sync_cycle()
            async with get_session_factory()() as session:
                stats = await get_vuln_db_stats(session)
            return report, stats
        finally:
            await close_engine()

    console.print("[bold cyan]Starting vulnerability database sync[/bold cyan]")
    with console.status("Syncing OSV ecosystems and NVD…"):
        report, stats = asyncio.run(_run())

    if not report.started:
        console.print("[yellow]A sync cycle is already running in this process.[/yellow]")
        raise SystemExit(1)

    stats_summary(stats.as_dict())
    if report.errors:
        console.print(f"[red]Completed with {len(report.errors)} error(s) "
                      f"in {report.duration_seconds:.1f}s[/red]")
        for err in report.errors:
            console.print(f"  [red]•[/red] {err}")
        raise SystemExit(2)
    console.print(f"[green]Sync complete[/green] in {report.duration_seconds:.1f}s")


@sync_cmd.command("trigger")
@click.pass_context
def sync_trigger(ctx: click.Context) -> None:
    """Ask the API server to start a sync cycle in the background."""
    import httpx

    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.post(
            f"{api_url}/api/v1/admin/vuln-db/sync", headers=_auth_headers(ctx), timeout=10
        )
        r.raise_for_status()
        data = r.json()
    except httpx.ConnectError:
        console.print(
            f"[red]Cannot connect to API at {api_url}.[/red] "
            "Is the server running? (vulnfeed serve)"
        )
        raise SystemExit(1)
    except httpx.HTTPStatusError as e:
        console.print(f"[red]API error {e.response.status_code}:[/red] {e.response.text}")
        raise SystemExit(1)

    if data.get("accepted"):
        console.print(f"[green]✓[/green] {data.get('message')}")
    else:
        console.print(f"[yellow]{data.get('message')}[/yellow]")


@sync_cmd.command("status")
@click.pass_context
def sync_status(ctx: click.Context) -> None:
    """Show per-source sync status from the API server."""
    import httpx

    api_url: str = ctx.obj["api_url"]
    try:
        r = httpx.get(
            f"{api_url}/api/v1/admin/vuln-db/status", headers=_auth_headers(ctx), timeout=10
        )
        r.raise_for_status()
        stats_summary(r.json())
    except httpx.ConnectError:
        console.print(
            f"[red]Cannot connect to API at {api_url}.[/red] "
            "Is the server running? (vulnfeed serve)"
        )
        raise SystemExit(1)
    except httpx.HTTPStatusError as e:
        console.print(f"[red]API error {e.response.status_code}:[/red] {e.response.text}")
        raise SystemExit(1)
