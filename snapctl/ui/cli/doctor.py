"""
CLI command for the bootstrap check.
"""

from __future__ import annotations

import json
import sys

import click

from snapctl.core.config.loader import ConfigError, load_config
from snapctl.core.observability.logging_config import configure_from_flags
from snapctl.core.services.bootstrap import run_bootstrap_checks
from snapctl.ui.cli.snapshot import verb_options

_STATUS_ICONS = {
    "healthy": ("💚", "green"),
    "degraded": ("🟡", "yellow"),
    "unhealthy": ("🔴", "red"),
    "unknown": ("❔", "white"),
}


@click.command("doctor")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@verb_options
@click.pass_context
def doctor(ctx: click.Context, as_json: bool) -> None:
    """Check that this host is ready for snapshots."""
    obj = ctx.ensure_object(dict)
    configure_from_flags(
        verbose=obj.get("verbose", False),
        quiet=obj.get("quiet", False),
        debug=obj.get("debug", False),
    )
    try:
        config = load_config(obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    report = run_bootstrap_checks(config, runner=obj.get("runner"))

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        sys.exit(0 if report.ok else 1)

    icon, color = _STATUS_ICONS.get(report.status, ("❔", "white"))
    click.echo()
    click.secho(f"{icon} Snapshot host: {report.status.upper()}", fg=color, bold=True)
    click.echo(f"   Backend: {config.backend}")
    click.echo()

    for check in report.checks:
        c_icon, c_color = _STATUS_ICONS.get(check.status, ("❔", "white"))
        click.secho(f"   {c_icon} {check.name}", fg=c_color, bold=True)
        click.echo(f"      {check.message}")

    click.echo()
    if not report.ok:
        sys.exit(1)
