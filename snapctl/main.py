"""
snapctl — CLI entrypoint.

Usage:
    snapctl --help
    snapctl snapshot "Before driver install"
    snapctl snapshot-list

Every verb is also installed as its own command (``snapshot``,
``snapshot-list``, ``snapshot-rm``, ...).
"""

from __future__ import annotations

from pathlib import Path

import click

from snapctl import __version__
from snapctl.core.observability.logging_config import configure_from_flags


@click.group()
@click.version_option(version=__version__, prog_name="snapctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to snapctl.yml (default: $SNAPCTL_CONFIG or /etc/snapctl/snapctl.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: Path | None,
) -> None:
    """snapctl — Btrfs snapshots with bootable GRUB entries."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    if config_path is not None:
        ctx.obj["config_path"] = config_path

    configure_from_flags(verbose=verbose, quiet=quiet, debug=debug)


# ── Register verbs from snapctl/ui/cli/ ─────────────────────────

from snapctl.ui.cli.doctor import doctor
from snapctl.ui.cli.snapshot import (
    clean_cmd,
    help_cmd,
    important_cmd,
    list_cmd,
    pre_update_cmd,
    rm_apt_cmd,
    rm_cmd,
    snapshot_cmd,
)

cli.add_command(snapshot_cmd)
cli.add_command(list_cmd)
cli.add_command(rm_cmd)
cli.add_command(important_cmd)
cli.add_command(clean_cmd)
cli.add_command(pre_update_cmd)
cli.add_command(rm_apt_cmd)
cli.add_command(help_cmd)
cli.add_command(doctor)


if __name__ == "__main__":
    cli()
