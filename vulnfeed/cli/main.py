"""vulnfeed CLI entry point: `vulnfeed` command group."""

from __future__ import annotations

import click

from vulnfeed.cli.commands.imports import imports_cmd
from vulnfeed.cli.commands.sync import sync_cmd


@click.group()
@click.version_option(package_name="vulnfeed")
@click.option(
    "--api-url",
    default="http://localhost:8000",
    envvar="VULNFEED_API_URL",
    show_default=True,
    help="Base URL of the vulnfeed API server",
)
@click.option(
    "--token",
    default=None,
    envvar="VULNFEED_TOKEN",
    help="Admin bearer token for the API commands",
)
@click.pass_context
def cli(ctx: click.Context, api_url: str, token: str | None) -> None:
    """vulnfeed: OSV/NVD vulnerability database sync.

    \b
    Quick start:
      vulnfeed sync run
      vulnfeed sync status --token <admin JWT>
      vulnfeed imports scan ./src

    API docs: http://localhost:8000/docs
    """
    ctx.ensure_object(dict)
    ctx.obj["api_url"] = api_url.rstrip("/")
    ctx.obj["token"] = token


# Register sub-commands
cli.add_command(sync_cmd)
cli.add_command(imports_cmd)


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True, help="Bind host")
@click.option("--port", default=8000, show_default=True, help="Bind port")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload (dev mode)")
def serve(host: str, port: int, reload: bool) -> None:
    """Start the vulnfeed API server."""
    import uvicorn

    uvicorn.run(
        "vulnfeed.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    cli()
