"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from migready import __version__
from migready.config import MigReadyConfig


@click.group()
@click.version_option(version=__version__, prog_name="migready")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """MigReady — migration readiness scans for CRM orgs."""
    ctx.ensure_object(dict)
    config = MigReadyConfig.load(config_path)
    config.verbose = verbose
    ctx.obj["config"] = config

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from migready.cli.history import diff, scans  # noqa: F811
    from migready.cli.scan import scan  # noqa: F811
    from migready.cli.server import serve  # noqa: F811

    main.add_command(scan)
    main.add_command(scans)
    main.add_command(diff)
    main.add_command(serve)


_register_commands()
