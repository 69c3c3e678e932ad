"""
Snapper store — snapshots managed by ``snapper -c <config>``.

Listing degrades at the transport layer only:

    snapper --jsonout list   →   snapper --csvout list   →   snapper list (table)

and every snapper call is retried with ``--no-dbus`` when the snapperd
D-Bus service is unreachable. Only when every path fails does ``list``
raise StoreUnavailable.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from datetime import datetime
from typing import Any

from snapctl.adapters.base import SnapshotStore
from snapctl.adapters.shell.command import EXIT_NOT_FOUND, CommandResult, CommandRunner
from snapctl.core.errors import InvalidArgument, NotFound, StoreUnavailable
from snapctl.core.models.snapshot import Snapshot, sort_snapshots

logger = logging.getLogger(__name__)

_CSV_COLUMNS = "number,type,pre-number,date,user,cleanup,description,userdata"

_DBUS_ERROR = re.compile(r"dbus|org\.opensuse\.snapper|snapperd", re.IGNORECASE)
_NOT_FOUND_ERROR = re.compile(r"not found|does not exist|unknown snapshot", re.IGNORECASE)

# Table-output date formats vary with locale and snapper version
_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%a %d %b %Y %H:%M:%S",
    "%a %d %b %Y %I:%M:%S %p",
    "%a %b %d %H:%M:%S %Y",
)

_TRUE_VALUES = {"yes", "true", "1", "on"}


class ListingFormatError(Exception):
    """One listing format failed; the next one should be tried."""


class SnapperStore(SnapshotStore):
    """Snapshot store backed by Snapper.

    Snapper owns the retention policy (NUMBER_LIMIT, NUMBER_LIMIT_IMPORTANT
    and NUMBER_MIN_AGE in its config file), so ``cleanup`` delegates to
    ``snapper cleanup``.
    """

    native_cleanup = True

    def __init__(
        self,
        runner: CommandRunner | None = None,
        config: str = "root",
        cleanup_algorithm: str = "number",
    ):
        super().__init__(runner)
        self.config = config
        self.cleanup_algorithm = cleanup_algorithm

    @property
    def name(self) -> str:
        return "snapper"

    def is_available(self) -> bool:
        return self.runner.which("snapper") is not None

    # ── Transport ───────────────────────────────────────────────

    def _snapper(self, *args: str, output: str | None = None) -> CommandResult:
        """Run a snapper subcommand, retrying without D-Bus if needed.

        Args:
            args: Subcommand and its arguments.
            output: Optional global output flag ('--jsonout', '--csvout').
        """
        global_opts = [output] if output else []
        cmd = ["snapper", *global_opts, "-c", self.config, *args]
        result = self.runner.run(cmd, sudo=True)

        if result.return_code == EXIT_NOT_FOUND:
            raise StoreUnavailable(f"snapper is not installed: {result.message}")

        if not result.ok and _DBUS_ERROR.search(result.stderr):
            logger.info("snapperd unreachable, retrying without D-Bus")
            cmd = ["snapper", "--no-dbus", *global_opts, "-c", self.config, *args]
            result = self.runner.run(cmd, sudo=True)

        return result

    # ── Queries ─────────────────────────────────────────────────

    def list(self) -> list[Snapshot]:
        errors: list[str] = []
        for label, reader in (
            ("json", self._list_json),
            ("csv", self._list_csv),
            ("table", self._list_table),
        ):
            try:
                snapshots = reader()
            except ListingFormatError as e:
                logger.debug("snapper %s listing unavailable: %s", label, e)
                errors.append(f"{label}: {e}")
                continue
            logger.debug("Listed %d snapshots via %s output", len(snapshots), label)
            return sort_snapshots(snapshots)

        raise StoreUnavailable(
            f"Cannot list snapper config '{self.config}' ({'; '.join(errors)})"
        )

    def raw_listing(self) -> str:
        result = self._snapper("list")
        return result.stdout if result.ok else ""

    def _list_json(self) -> list[Snapshot]:
        result = self._snapper("list", output="--jsonout")
        if not result.ok:
            raise ListingFormatError(result.message)
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ListingFormatError(f"invalid JSON: {e}") from e
        return parse_json_listing(data, self.config)

    def _list_csv(self) -> list[Snapshot]:
        result = self._snapper("list", "--columns", _CSV_COLUMNS, output="--csvout")
        if not result.ok:
            raise ListingFormatError(result.message)
        return parse_csv_listing(result.stdout)

    def _list_table(self) -> list[Snapshot]:
        result = self._snapper("list")
        if not result.ok:
            raise ListingFormatError(result.message)
        return parse_table_listing(result.stdout)

    # ── Mutations ───────────────────────────────────────────────

    def create(self, description: str) -> Snapshot:
        args = ["create", "--print-number"]
        if description:
            args += ["--description", description]
        if self.cleanup_algorithm:
            args += ["--cleanup-algorithm", self.cleanup_algorithm]

        result = self._snapper(*args)
        if not result.ok:
            raise StoreUnavailable(f"snapper create failed: {result.message}")

        try:
            number = int(result.stdout.strip().splitlines()[-1])
        except (ValueError, IndexError) as e:
            raise StoreUnavailable(
                f"Unexpected snapper create output: {result.stdout!r}"
            ) from e

        logger.info("Created snapper snapshot %d", number)
        snap = self.get(number)
        if snap is None:
            raise StoreUnavailable(f"Snapshot {number} was created but is not listed")
        return snap

    def delete(self, snapshot_id: int) -> None:
        self._require(snapshot_id)
        result = self._snapper("delete", str(snapshot_id))
        if not result.ok:
            if _NOT_FOUND_ERROR.search(result.message):
                raise NotFound(snapshot_id)
            raise StoreUnavailable(f"snapper delete failed: {result.message}")
        logger.info("Deleted snapper snapshot %d", snapshot_id)

    def set_important(self, snapshot_id: int, value: bool = True) -> None:
        self._require(snapshot_id)
        flag = "important=yes" if value else "important=no"
        result = self._snapper("modify", "--userdata", flag, str(snapshot_id))
        if not result.ok:
            if _NOT_FOUND_ERROR.search(result.message):
                raise NotFound(snapshot_id)
            raise StoreUnavailable(f"snapper modify failed: {result.message}")
        logger.info("Set %s on snapper snapshot %d", flag, snapshot_id)

    def cleanup(self, algorithm: str = "number") -> None:
        result = self._snapper("cleanup", algorithm)
        if not result.ok:
            raise StoreUnavailable(f"snapper cleanup failed: {result.message}")

    def _require(self, snapshot_id: int) -> Snapshot:
        if snapshot_id <= 0:
            raise InvalidArgument(f"Invalid snapshot id: {snapshot_id}")
        snap = self.get(snapshot_id)
        if snap is None:
            raise NotFound(snapshot_id)
        return snap


# ── Parsers ─────────────────────────────────────────────────────


def parse_userdata(raw: Any) -> dict[str, str]:
    """Normalize snapper userdata (JSON dict or 'k=v, k2=v2' text)."""
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    pairs: dict[str, str] = {}
    for item in str(raw).split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs


def parse_date(raw: str | None) -> datetime | None:
    """Parse a snapper date in any of the formats it prints."""
    if not raw:
        return None
    text = raw.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    # Drop a trailing timezone abbreviation ("CEST", "UTC")
    parts = text.split()
    candidates = [text]
    if parts and parts[-1].isalpha() and parts[-1].isupper() and len(parts[-1]) > 2:
        candidates.append(" ".join(parts[:-1]))

    for candidate in candidates:
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
    logger.debug("Unparseable snapper date: %r", raw)
    return None


def _parse_number(raw: Any) -> int | None:
    text = str(raw or "").strip()
    # Newer snapper marks the default/active snapshot with * - +
    text = text.rstrip("*-+ ")
    return int(text) if text.isascii() and text.isdigit() else None


def _build(row: dict[str, Any]) -> Snapshot | None:
    number = _parse_number(row.get("number"))
    # Snapshot 0 is the live filesystem, not a snapshot
    if number is None or number == 0:
        return None

    kind = str(row.get("type") or "single").strip().lower()
    if kind not in ("single", "pre", "post"):
        kind = "single"

    userdata = parse_userdata(row.get("userdata"))
    return Snapshot(
        id=number,
        description=str(row.get("description") or "").strip(),
        created_at=parse_date(row.get("date")),
        important=userdata.get("important", "").lower() in _TRUE_VALUES,
        type=kind,
        pre_id=_parse_number(row.get("pre-number") or row.get("pre_number")),
        user=str(row.get("user") or "").strip(),
        cleanup=str(row.get("cleanup") or "").strip(),
    )


def parse_json_listing(data: Any, config: str = "root") -> list[Snapshot]:
    """Parse ``snapper --jsonout list`` output."""
    if not isinstance(data, dict):
        raise ListingFormatError("JSON listing is not an object")

    entries = data.get(config)
    if entries is None:
        entries = data.get("snapshots")
    if entries is None and len(data) == 1:
        entries = next(iter(data.values()))
    if not isinstance(entries, list):
        raise ListingFormatError(f"No snapshot array for config '{config}'")

    snapshots = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ListingFormatError("Snapshot entry is not an object")
        snap = _build(entry)
        if snap is not None:
            snapshots.append(snap)
    return snapshots


def parse_csv_listing(text: str) -> list[Snapshot]:
    """Parse ``snapper --csvout list --columns ...`` output."""
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames or "number" not in reader.fieldnames:
        raise ListingFormatError("CSV listing has no 'number' column")
    snapshots = []
    for row in reader:
        snap = _build(row)
        if snap is not None:
            snapshots.append(snap)
    return snapshots


_TABLE_HEADERS = {
    "#": "number",
    "type": "type",
    "pre #": "pre-number",
    "date": "date",
    "user": "user",
    "cleanup": "cleanup",
    "description": "description",
    "userdata": "userdata",
}


def parse_table_listing(text: str) -> list[Snapshot]:
    """Parse the human table printed by plain ``snapper list``."""
    lines = [line.replace("│", "|") for line in text.splitlines() if line.strip()]
    if not lines or "|" not in lines[0]:
        raise ListingFormatError("Table listing has no header row")

    headers = [_TABLE_HEADERS.get(cell.strip().lower(), cell.strip().lower())
               for cell in lines[0].split("|")]
    if "number" not in headers:
        raise ListingFormatError("Table listing has no '#' column")

    # Descriptions are free text and may contain "|"; split the columns
    # around it from the left and from the right
    desc_index = headers.index("description") if "description" in headers else None

    snapshots = []
    for line in lines[1:]:
        # Separator rows are made of ---+--- or box-drawing characters
        if not line.strip(" -+─┼━╪|"):
            continue
        if desc_index is None:
            parts = line.split("|")
        else:
            parts = line.split("|", desc_index)
            trailing = len(headers) - desc_index - 1
            if len(parts) > desc_index and trailing:
                parts = parts[:-1] + parts[-1].rsplit("|", trailing)
        cells = [cell.strip() for cell in parts]
        row = dict(zip(headers, cells))
        snap = _build(row)
        if snap is not None:
            snapshots.append(snap)
    return snapshots
