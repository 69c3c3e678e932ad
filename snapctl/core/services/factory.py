"""
Service factory — wire configuration into a ready SnapshotService.

The store variant is selected here, once, and handed to the service
explicitly. Nothing downstream looks the backend up again.
"""

from __future__ import annotations

import logging

from snapctl.adapters.bootloader import BootloaderSync, CommandSync, DaemonSync, NullSync
from snapctl.adapters.btrfs import BtrfsStore
from snapctl.adapters.package_manager import PackageManager
from snapctl.adapters.registry import StoreRegistry
from snapctl.adapters.shell.command import CommandRunner
from snapctl.adapters.snapper import SnapperStore
from snapctl.core.config.loader import ConfigError, load_retention_policy
from snapctl.core.models.config import SnapctlConfig
from snapctl.core.services.snapshot_ops import SnapshotService

logger = logging.getLogger(__name__)


def build_registry(config: SnapctlConfig, runner: CommandRunner) -> StoreRegistry:
    """Register every store variant with its configured settings."""
    registry = StoreRegistry()
    registry.register(SnapperStore(
        runner,
        config=config.snapper.config,
        cleanup_algorithm=config.snapper.cleanup_algorithm,
    ))
    registry.register(BtrfsStore(
        runner,
        source=config.btrfs.source,
        snapshot_dir=config.btrfs.snapshot_dir,
    ))
    return registry


def build_bootloader(config: SnapctlConfig, runner: CommandRunner) -> BootloaderSync:
    settings = config.bootloader
    if settings.mode == "none":
        return NullSync()
    command = CommandSync(runner, command=list(settings.command))
    if settings.mode == "daemon":
        return DaemonSync(runner, service=settings.service, fallback=command)
    return command


def build_service(
    config: SnapctlConfig,
    runner: CommandRunner | None = None,
) -> SnapshotService:
    """Build the command surface for the configured backend.

    Raises:
        ConfigError: If the backend name has no registered store.
    """
    runner = runner or CommandRunner(use_sudo=config.use_sudo)
    registry = build_registry(config, runner)
    try:
        store = registry.resolve(config.backend)
    except KeyError as e:
        raise ConfigError(str(e.args[0])) from e

    policy = load_retention_policy(config)
    logger.debug(
        "Using %s store, retention %d/%d from %s",
        store.name, policy.number_limit, policy.number_limit_important, policy.source,
    )
    return SnapshotService(
        store=store,
        bootloader=build_bootloader(config, runner),
        package_manager=PackageManager(
            runner, commands=[list(c) for c in config.package_manager.commands]
        ),
        policy=policy,
        cleanup_algorithm=config.snapper.cleanup_algorithm or "number",
    )
