"""Bootstrap commands.

This module provides ``manualboot bootstrap`` which turns an existing
machine into the controller of an environment, plus ``status`` and
``reset`` to inspect and clear the recorded bootstrap state.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import NoReturn

import click

from ..context import BootstrapContext
from ..environ import ManualEnviron
from ..errors import AlreadyProvisionedError, BootstrapError, ValidationError
from ..hardware import HardwareCharacteristics
from ..orchestrator import Bootstrapper, BootstrapRequest
from ..remote import SSHRunner
from ..shared.paths import ensure_dirs
from ..storage import BootstrapStateStore
from ..tools import load_tools_file


def _environ(ctx: click.Context, name: str | None, storage_dir: str | None) -> ManualEnviron:
    cfg = ctx.obj["config"]
    root = ensure_dirs(Path(storage_dir or cfg.storage_dir))
    return ManualEnviron.with_file_storage(name or cfg.environ, root)


def _discard(message: str) -> None:
    pass


def _fail(ctx: click.Context, err: BootstrapError) -> NoReturn:
    if ctx.obj["json_output"]:
        click.echo(json.dumps(err.to_dict(), indent=2))
    else:
        click.echo(f"✗ {err.describe()}", err=True)
    sys.exit(err.code if isinstance(err, ValidationError) else 1)


@click.command()
@click.argument("host")
@click.option("--tools-file", required=True, type=click.Path(exists=True), help="YAML tools registry")
@click.option("--series", default="", help="Target OS series (detected if omitted)")
@click.option(
    "--hardware",
    default=None,
    help="Hardware characteristics, e.g. 'arch=amd64 mem=4G' (arch detected if omitted)",
)
@click.option("--data-dir", default=None, help="Agent data directory on the host")
@click.option("--environ", "environ_name", default=None, help="Environment name")
@click.option("--storage-dir", default=None, help="Local storage root for bootstrap state")
@click.option("--ssh-option", "ssh_options", multiple=True, help="Extra ssh -o option (repeatable)")
@click.option("--timeout", default=None, type=float, help="Overall deadline in seconds")
@click.pass_context
def bootstrap(
    ctx,
    host,
    tools_file,
    series,
    hardware,
    data_dir,
    environ_name,
    storage_dir,
    ssh_options,
    timeout,
):
    """Bootstrap HOST (user@host) as the environment controller.

    Examples:

        # Detect series and arch over SSH
        manualboot bootstrap ubuntu@node1 --tools-file tools.yaml

        # Skip detection
        manualboot bootstrap ubuntu@node1 --tools-file tools.yaml \\
            --series bionic --hardware arch=amd64
    """
    cfg = ctx.obj["config"]
    try:
        hc = HardwareCharacteristics.parse(hardware) if hardware else None
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--hardware") from e
    try:
        tools = load_tools_file(tools_file)
    except (ValueError, OSError) as e:
        raise click.BadParameter(str(e), param_hint="--tools-file") from e

    environ = _environ(ctx, environ_name, storage_dir)
    runner = SSHRunner(
        options=list(cfg.ssh_options) + list(ssh_options),
        connect_timeout=cfg.connect_timeout,
    )
    request = BootstrapRequest(
        host=host,
        data_dir=data_dir or cfg.data_dir,
        environ=environ,
        possible_tools=tools,
        series=series,
        hardware=hc,
        context=BootstrapContext(
            timeout=timeout,
            progress=_discard if ctx.obj["json_output"] else None,
            verbose=ctx.obj["verbose"] > 0,
        ),
    )

    if not ctx.obj["json_output"]:
        click.echo(f"\n🚀 Bootstrapping {host} (environment '{environ.name}')\n")

    try:
        result = Bootstrapper(request, runner=runner, execute_timeout=cfg.command_timeout).run()
    except AlreadyProvisionedError as e:
        if ctx.obj["json_output"]:
            click.echo(json.dumps({"status": "already_provisioned", **e.to_dict()}, indent=2))
        else:
            click.echo(f"✓ Nothing to do: {e.describe()}")
        return
    except BootstrapError as e:
        _fail(ctx, e)

    if ctx.obj["json_output"]:
        click.echo(
            json.dumps(
                {
                    "status": "bootstrapped",
                    "host": host,
                    "environ": environ.name,
                    "instances": result.instance_ids,
                    "tools": str(result.tool.version),
                    "series": result.series,
                    "hardware": str(result.hardware) if result.hardware else None,
                },
                indent=2,
            )
        )
        return

    click.echo("\n" + "=" * 50)
    click.echo("✓ Bootstrap complete!")
    click.echo(f"\n  Host:      {host}")
    click.echo(f"  Tools:     {result.tool.version}")
    click.echo(f"  Instances: {', '.join(result.instance_ids)}")
    click.echo("  Status:    manualboot status")
    click.echo("=" * 50 + "\n")


@click.command()
@click.option("--environ", "environ_name", default=None, help="Environment name")
@click.option("--storage-dir", default=None, help="Local storage root for bootstrap state")
@click.pass_context
def status(ctx, environ_name, storage_dir):
    """Show the recorded bootstrap state."""
    environ = _environ(ctx, environ_name, storage_dir)
    try:
        state = BootstrapStateStore(environ.storage()).load()
    except BootstrapError as e:
        _fail(ctx, e)

    if ctx.obj["json_output"]:
        data = {"environ": environ.name, "bootstrapped": state is not None}
        if state is not None:
            data["instances"] = state.state_instances
            data["characteristics"] = [str(hc) for hc in state.characteristics]
        click.echo(json.dumps(data, indent=2))
        return

    if state is None:
        click.echo(f"Environment '{environ.name}' is not bootstrapped. Run: manualboot bootstrap")
        return
    click.echo(f"Environment '{environ.name}' is bootstrapped")
    click.echo("Instances:")
    for instance_id in state.state_instances:
        click.echo(f"  ✓ {instance_id}")
    for hc in state.characteristics:
        click.echo(f"Hardware: {hc}")


@click.command()
@click.option("--environ", "environ_name", default=None, help="Environment name")
@click.option("--storage-dir", default=None, help="Local storage root for bootstrap state")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(ctx, environ_name, storage_dir, yes):
    """Forget the recorded bootstrap state.

    The machine itself is left untouched.
    """
    environ = _environ(ctx, environ_name, storage_dir)
    if not yes and not click.confirm(
        f"Remove bootstrap state of environment '{environ.name}'?"
    ):
        return
    try:
        BootstrapStateStore(environ.storage()).remove()
    except BootstrapError as e:
        _fail(ctx, e)
    click.echo(f"✓ Bootstrap state of '{environ.name}' removed.")
