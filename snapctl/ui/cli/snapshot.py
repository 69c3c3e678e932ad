"""
CLI commands for the snapshot verbs.

Thin wrappers over ``snapctl.core.services.snapshot_ops``. Every command
works both as ``snapctl <verb>`` and as its own console script
(``snapshot``, ``snapshot-list``, ...).
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from snapctl.core.config.loader import ConfigError, load_config
from snapctl.core.errors import InvalidArgument
from snapctl.core.models.snapshot import Snapshot
from snapctl.core.observability.logging_config import configure_from_flags
from snapctl.core.services.factory import build_service
from snapctl.core.services.snapshot_ops import SnapshotService, VerbResult, parse_snapshot_id
from snapctl.ui.cli.render import echo_steps, echo_table


def _remember(ctx: click.Context, param: click.Parameter, value: object) -> object:
    """Store a global option in ctx.obj without overriding the group's value."""
    if value:
        ctx.ensure_object(dict)[param.name] = value
    return value


_COMMON_OPTIONS = (
    click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        expose_value=False,
        callback=_remember,
        help="Path to snapctl.yml (default: $SNAPCTL_CONFIG or /etc/snapctl/snapctl.yml).",
    ),
    click.option("--verbose", "-v", is_flag=True, expose_value=False,
                 callback=_remember, help="Enable verbose output."),
    click.option("--quiet", "-q", is_flag=True, expose_value=False,
                 callback=_remember, help="Suppress non-essential output."),
    click.option("--debug", is_flag=True, expose_value=False,
                 callback=_remember, help="Enable debug logging (very verbose)."),
)


def verb_options(f):
    """Attach --config/--verbose/--quiet/--debug to a standalone verb."""
    for option in reversed(_COMMON_OPTIONS):
        f = option(f)
    return f


def get_service(ctx: click.Context) -> SnapshotService:
    """Configure logging and build (or reuse) the command surface."""
    obj = ctx.ensure_object(dict)
    configure_from_flags(
        verbose=obj.get("verbose", False),
        quiet=obj.get("quiet", False),
        debug=obj.get("debug", False),
    )

    service = obj.get("service")
    if service is None:
        try:
            service = build_service(load_config(obj.get("config_path")))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(1)
        obj["service"] = service
    return service


def _usage(message: str, usage: str) -> None:
    click.secho(f"❌ {message}", fg="red")
    click.echo(f"Usage: {usage}")
    sys.exit(1)


def _parse_ids(raw_ids: tuple[str, ...], usage: str) -> list[int]:
    ids = []
    for raw in raw_ids:
        try:
            ids.append(parse_snapshot_id(raw))
        except InvalidArgument as e:
            _usage(str(e), usage)
    return ids


def _finish(result: VerbResult) -> None:
    if result.exit_code:
        sys.exit(result.exit_code)


def _listed(result: VerbResult) -> bool:
    """Whether the final listing step of a verb succeeded."""
    lists = [r for r in result.receipts if r.step == "list"]
    return bool(lists) and lists[-1].ok


def _confirm_delete(snap: Snapshot) -> bool:
    label = f" ({snap.description})" if snap.description else ""
    return click.confirm(f"Delete snapshot {snap.id}{label}? This is permanent.", default=False)


# ── Verbs ───────────────────────────────────────────────────────


@click.command("snapshot")
@click.argument("description", nargs=-1)
@verb_options
@click.pass_context
def snapshot_cmd(ctx: click.Context, description: tuple[str, ...]) -> None:
    """Create a snapshot and refresh the GRUB menu.

    Examples:

        snapshot "Before NVIDIA driver install"
    """
    text = " ".join(description).strip()
    if not text:
        _usage("A description is required.", "snapshot <description>")

    service = get_service(ctx)
    click.secho(f"📸 Creating snapshot: \"{text}\"...", fg="cyan", bold=True)
    result = service.create_snapshot(text)
    echo_steps(result)

    if _listed(result):
        click.echo()
        click.secho("Latest snapshots:", bold=True)
        echo_table(result.snapshots)
    _finish(result)


@click.command("snapshot-list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@verb_options
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """Show all snapshots in a table."""
    service = get_service(ctx)
    result = service.list_snapshots()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"📋 {service.store.name} snapshots:", fg="cyan", bold=True)
    click.echo()

    if result.receipts and result.receipts[0].ok:
        echo_table(result.snapshots)
        return

    echo_steps(result)
    if result.raw_listing:
        click.echo(result.raw_listing.rstrip("\n"))
    else:
        click.secho("   No listing available from the snapshot store.", fg="yellow")


@click.command("snapshot-rm")
@click.argument("snapshot_ids", nargs=-1)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Do not ask for confirmation.")
@verb_options
@click.pass_context
def rm_cmd(ctx: click.Context, snapshot_ids: tuple[str, ...], assume_yes: bool) -> None:
    """Delete one or more snapshots by ID, confirming each."""
    usage = "snapshot-rm <ID> [ID ...]"
    if not snapshot_ids:
        _usage("At least one snapshot ID is required.", usage)
    ids = _parse_ids(snapshot_ids, usage)

    service = get_service(ctx)
    confirm = (lambda snap: True) if assume_yes else _confirm_delete
    result = service.remove_snapshots(ids, confirm)
    echo_steps(result)

    if not result.failed:
        click.secho("🗑️  Deletions complete.", fg="green")
    _finish(result)


@click.command("snapshot-important")
@click.argument("snapshot_id", required=False)
@click.option("--unset", is_flag=True, help="Remove the important flag instead.")
@verb_options
@click.pass_context
def important_cmd(ctx: click.Context, snapshot_id: str | None, unset: bool) -> None:
    """Mark a snapshot as important (kept apart from normal cleanup)."""
    usage = "snapshot-important <ID>"
    if snapshot_id is None:
        _usage("A snapshot ID is required.", usage)
    ids = _parse_ids((snapshot_id,), usage)

    service = get_service(ctx)
    result = service.mark_important(ids[0], value=not unset)
    echo_steps(result)
    _finish(result)


@click.command("snapshot-clean")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted.")
@verb_options
@click.pass_context
def clean_cmd(ctx: click.Context, dry_run: bool) -> None:
    """Enforce the number cleanup policy and refresh GRUB."""
    service = get_service(ctx)
    policy = service.policy
    click.secho(
        f"🧹 Enforcing retention: keep {policy.number_limit} "
        f"+ {policy.number_limit_important} important",
        fg="cyan",
        bold=True,
    )
    result = service.clean(dry_run=dry_run)
    echo_steps(result)

    if dry_run:
        click.echo()
        click.secho("Would delete:", bold=True)
        echo_table(result.eligible)
    elif not result.failed and _listed(result):
        click.echo()
        click.secho("📦 Remaining snapshots:", bold=True)
        echo_table(result.snapshots)
    _finish(result)


@click.command("pre-update")
@verb_options
@click.pass_context
def pre_update_cmd(ctx: click.Context) -> None:
    """Snapshot the system, then run package upgrades."""
    service = get_service(ctx)
    result = service.pre_update()
    echo_steps(result)

    if result.receipts and result.receipts[0].ok and _listed(result):
        click.echo()
        click.secho("Recent snapshots:", bold=True)
        echo_table(result.snapshots)
    _finish(result)


@click.command("snapshot-rm-apt")
@click.option(
    "--match-description",
    is_flag=True,
    help="Also select single snapshots whose description mentions apt.",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Do not ask for confirmation.")
@verb_options
@click.pass_context
def rm_apt_cmd(ctx: click.Context, match_description: bool, assume_yes: bool) -> None:
    """Remove all apt pre/post snapshots in one go."""
    service = get_service(ctx)

    def confirm(selected: list[Snapshot]) -> bool:
        click.echo(f"Will delete IDs: {' '.join(str(s.id) for s in selected)}")
        return assume_yes or click.confirm("Proceed?", default=False)

    click.secho("🧹 Removing apt snapshots...", fg="cyan", bold=True)
    result = service.remove_apt_snapshots(confirm, match_description=match_description)
    echo_steps(result)
    _finish(result)


CHEAT_SHEET = """
📘  SNAPSHOT MAINTENANCE CHEAT SHEET
────────────────────────────────────────────────────────
Snapshots appear in GRUB under the snapshots submenu (read-only).

CREATE
  snapshot "<description>"
    → Create a snapshot and refresh GRUB.

LIST
  snapshot-list [--json]
    → Show all snapshots in a table.

MARK IMPORTANT
  snapshot-important <ID> [--unset]
    → Count the snapshot against the important limit instead.

CLEAN
  snapshot-clean [--dry-run]
    → Enforce NUMBER_LIMIT and NUMBER_LIMIT_IMPORTANT, oldest first.

DELETE
  snapshot-rm <ID> [ID ...]
    → Delete by ID (confirms each) and refresh GRUB.
  snapshot-rm-apt [--match-description]
    → Remove all apt pre/post snapshots in one go.

UPDATE
  pre-update
    → Snapshot with a timestamp, then upgrade packages.

CHECK
  snapctl doctor
    → Verify Btrfs root, snapshot subvolume and required tools.
"""


@click.command("snapshot-help")
def help_cmd() -> None:
    """Print a quick reference of the snapshot commands."""
    click.echo(CHEAT_SHEET)
