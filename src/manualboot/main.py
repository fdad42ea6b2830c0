"""CLI main entry point."""

import json
import sys
from pathlib import Path

import click

from . import __version__
from .commands.bootstrap import bootstrap, reset, status
from .config import get_config_path, load_config
from .shared.logging import configure_logging


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity")
@click.option("--log-file", type=click.Path(), default=None, help="Write JSON logs to this file")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    verbose: int,
    log_file: str | None,
    json_output: bool,
) -> None:
    """Bootstrap an existing machine as a cluster controller."""
    ctx.ensure_object(dict)
    try:
        cfg = load_config(Path(config_path) if config_path else None)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if verbose >= 2:
        level = "debug"
    elif verbose == 1:
        level = "info"
    else:
        level = cfg.log_level
    configure_logging(level, log_file=log_file, json_output=log_file is not None)

    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = cfg
    ctx.obj["verbose"] = verbose
    ctx.obj["json_output"] = json_output


cli.add_command(bootstrap)
cli.add_command(status)
cli.add_command(reset)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"manualboot version {__version__}")


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration and where each value came from."""
    cfg = ctx.obj["config"]
    source_file = ctx.obj["config_path"] or str(get_config_path())
    values = cfg.values()

    if ctx.obj["json_output"]:
        data = {
            "path": source_file,
            "values": values,
            "sources": {key: cfg.get_source(key) for key in values},
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("manualboot Configuration")
    click.echo(f"File: {source_file}\n")
    for key, value in values.items():
        if isinstance(value, list):
            value = ", ".join(value) or "(none)"
        click.echo(f"  {key:<16s} {value}  ({cfg.get_source(key)})")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
