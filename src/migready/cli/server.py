"""CLI command: migready serve — read-only HTTP API over stored scans."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from migready.config import MigReadyConfig

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8471).",
)
@click.pass_context
def serve(ctx: click.Context, port: int | None) -> None:
    """Serve stored scans and scan diffs over HTTP."""
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]The serve command needs the web extra.[/red]\n"
            "Install with: pip install migready[web]"
        )
        raise SystemExit(1)

    from migready.web.app import create_app

    config: MigReadyConfig = ctx.obj["config"]
    if port is not None:
        config.web_port = port

    base_url = f"http://{config.web_host}:{config.web_port}/api"
    console.print(f"[bold]MigReady[/bold] scan history at [cyan]{base_url}/scans[/cyan]")
    console.print(f"  [dim]database: {config.db_path}[/dim]\n")

    async def _serve() -> None:
        app = await create_app(config)
        await uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.web_host,
                port=config.web_port,
                log_level="debug" if config.verbose else "info",
            )
        ).serve()

    asyncio.run(_serve())
