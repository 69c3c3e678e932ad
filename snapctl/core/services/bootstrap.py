"""
Bootstrap check — validate the host before the verbs are used.

Checks that the root filesystem is Btrfs, that the snapshot directory is
its own subvolume, that the tools the configured backend needs are
installed and, for Snapper, that the store config exists. Used by the
``doctor`` command.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from snapctl.adapters.shell.command import CommandRunner
from snapctl.core.models.config import SnapctlConfig

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Outcome of a single bootstrap check."""

    name: str
    status: str = "unknown"  # healthy, degraded, unhealthy, unknown
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class BootstrapReport:
    """Aggregate of all bootstrap checks."""

    status: str = "healthy"
    timestamp: str = ""
    checks: list[CheckResult] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    @property
    def ok(self) -> bool:
        return self.status != "unhealthy"

    def add(self, check: CheckResult) -> None:
        self.checks.append(check)
        self._recalculate()

    def _recalculate(self) -> None:
        statuses = [c.status for c in self.checks]
        if any(s == "unhealthy" for s in statuses):
            self.status = "unhealthy"
        elif any(s == "degraded" for s in statuses):
            self.status = "degraded"
        elif all(s == "healthy" for s in statuses):
            self.status = "healthy"
        else:
            self.status = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "checks": [c.to_dict() for c in self.checks],
        }


def check_privileges(runner: CommandRunner) -> CheckResult:
    if os.geteuid() == 0:
        return CheckResult(name="privileges", status="healthy", message="Running as root")
    if runner.use_sudo and runner.which("sudo"):
        return CheckResult(
            name="privileges", status="healthy", message="Commands will run through sudo"
        )
    return CheckResult(
        name="privileges",
        status="unhealthy",
        message="Not root and sudo is unavailable or disabled",
    )


def check_root_filesystem(runner: CommandRunner, source: str = "/") -> CheckResult:
    result = runner.run(["findmnt", "-no", "FSTYPE", source])
    if not result.ok:
        return CheckResult(
            name="filesystem",
            status="unknown",
            message=f"Cannot detect filesystem of {source}: {result.message}",
        )
    fstype = result.stdout.strip()
    if fstype != "btrfs":
        return CheckResult(
            name="filesystem",
            status="unhealthy",
            message=f"{source} is not on Btrfs (detected: {fstype or 'unknown'})",
            details={"fstype": fstype},
        )
    return CheckResult(
        name="filesystem",
        status="healthy",
        message=f"Detected Btrfs on {source}",
        details={"fstype": fstype},
    )


def check_snapshot_subvolume(runner: CommandRunner, snapshot_dir: str) -> CheckResult:
    result = runner.run(["btrfs", "subvolume", "show", snapshot_dir], sudo=True)
    if result.ok:
        return CheckResult(
            name="snapshot_subvolume",
            status="healthy",
            message=f"{snapshot_dir} is a Btrfs subvolume",
        )
    return CheckResult(
        name="snapshot_subvolume",
        status="unhealthy",
        message=f"{snapshot_dir} is not a Btrfs subvolume",
        details={"error": result.message},
    )


def check_tools(runner: CommandRunner, config: SnapctlConfig) -> CheckResult:
    required = ["btrfs"]
    if config.backend == "snapper":
        required.append("snapper")
    if config.bootloader.mode != "none" and config.bootloader.command:
        required.append(config.bootloader.command[0])

    optional = [cmd[0] for cmd in config.package_manager.commands if cmd]
    if config.bootloader.mode == "daemon":
        optional.append("systemctl")

    missing = [tool for tool in required if runner.which(tool) is None]
    missing_optional = sorted({tool for tool in optional if runner.which(tool) is None})
    details = {"required": required, "missing": missing, "missing_optional": missing_optional}

    if missing:
        return CheckResult(
            name="tools",
            status="unhealthy",
            message=f"Missing required tools: {', '.join(missing)}",
            details=details,
        )
    if missing_optional:
        return CheckResult(
            name="tools",
            status="degraded",
            message=f"Missing optional tools: {', '.join(missing_optional)}",
            details=details,
        )
    return CheckResult(
        name="tools", status="healthy", message="All required tools found", details=details
    )


def check_snapper_config(config: SnapctlConfig) -> CheckResult:
    path = Path(config.snapper.config_dir) / config.snapper.config
    if path.is_file():
        return CheckResult(
            name="snapper_config", status="healthy", message=f"Found {path}"
        )
    return CheckResult(
        name="snapper_config",
        status="unhealthy",
        message=f"Snapper config missing: {path} (run: snapper -c {config.snapper.config} create-config /)",
    )


def check_bootloader_service(runner: CommandRunner, service: str) -> CheckResult:
    result = runner.run(["systemctl", "is-active", "--quiet", service])
    if result.ok:
        return CheckResult(
            name="bootloader", status="healthy", message=f"{service} is active"
        )
    return CheckResult(
        name="bootloader",
        status="degraded",
        message=f"{service} is not active, boot menu will be regenerated explicitly",
    )


def run_bootstrap_checks(
    config: SnapctlConfig,
    runner: CommandRunner | None = None,
) -> BootstrapReport:
    """Run every check relevant to the configured backend."""
    runner = runner or CommandRunner(use_sudo=config.use_sudo)
    report = BootstrapReport()

    report.add(check_privileges(runner))
    report.add(check_root_filesystem(runner, config.btrfs.source))
    report.add(check_tools(runner, config))
    report.add(check_snapshot_subvolume(runner, config.btrfs.snapshot_dir))
    if config.backend == "snapper":
        report.add(check_snapper_config(config))
    if config.bootloader.mode == "daemon":
        report.add(check_bootloader_service(runner, config.bootloader.service))

    logger.info("Bootstrap check: %s", report.status)
    return report
