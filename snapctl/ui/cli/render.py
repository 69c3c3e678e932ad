"""
Terminal rendering — snapshot tables and per-step status lines.
"""

from __future__ import annotations

import click

from snapctl.core.models.snapshot import Snapshot
from snapctl.core.services.snapshot_ops import VerbResult

_DATE_FMT = "%a %d %b %Y %H:%M:%S"

_STEP_ICONS = {
    "create": "📸",
    "sync": "🔄",
    "delete": "🗑️ ",
    "modify": "⭐",
    "plan": "🧹",
    "cleanup": "🧹",
    "upgrade": "⬆️ ",
    "list": "📋",
}

HEADER = (
    f"{'ID':<5}  {'Type':<6}  {'Pre#':<5}  {'Date':<24}  "
    f"{'User':<8}  {'Cleanup':<8}  {'Imp':<3}  Description"
)
RULE = "-----  ------  -----  ------------------------  --------  --------  ---  ------------------------------"


def format_row(snap: Snapshot) -> str:
    date = snap.created_at.strftime(_DATE_FMT) if snap.created_at else ""
    pre = str(snap.pre_id) if snap.pre_id else ""
    important = "★" if snap.important else ""
    return (
        f"{snap.id:<5}  {snap.type:<6}  {pre:<5}  {date:<24}  "
        f"{snap.user:<8}  {snap.cleanup:<8}  {important:<3}  {snap.description}"
    )


def format_table(snapshots: list[Snapshot]) -> list[str]:
    """Fixed-width table lines, header included."""
    return [HEADER, RULE, *(format_row(s) for s in snapshots)]


def echo_table(snapshots: list[Snapshot]) -> None:
    if not snapshots:
        click.secho("   (no snapshots)", fg="yellow")
        return
    for line in format_table(snapshots):
        click.echo(line)


def echo_steps(result: VerbResult, quiet_steps: tuple[str, ...] = ("list",)) -> None:
    """One status line per step.

    Successful steps named in ``quiet_steps`` are not printed because the
    table that follows already shows them.
    """
    for receipt in result.receipts:
        if receipt.ok:
            if receipt.step in quiet_steps:
                continue
            icon = _STEP_ICONS.get(receipt.step, "✅")
            click.secho(f"{icon} {receipt.output}", fg="green")
        elif receipt.skipped:
            click.secho(f"⊘ {receipt.output}", fg="yellow")
        elif receipt.fatal:
            click.secho(f"❌ {receipt.error}", fg="red")
        else:
            click.secho(f"⚠️  {receipt.error}", fg="yellow")
