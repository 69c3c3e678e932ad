"""
Tests for configuration loading, Snapper retention settings and service wiring.
"""

import textwrap
from pathlib import Path

import pytest

from snapctl.adapters.bootloader import CommandSync, DaemonSync, NullSync
from snapctl.adapters.btrfs import BtrfsStore
from snapctl.adapters.mock import MockRunner
from snapctl.adapters.snapper import SnapperStore
from snapctl.core.config.loader import (
    CONFIG_ENV_VAR,
    ConfigError,
    find_config_file,
    load_config,
    load_retention_policy,
    read_shell_config,
)
from snapctl.core.models.config import SnapctlConfig
from snapctl.core.services.factory import build_bootloader, build_service


def _write(path: Path, content: str) -> Path:
    path.write_text(textwrap.dedent(content))
    return path


# ── Loader Tests ─────────────────────────────────────────────────────


class TestLoadConfig:
    def test_defaults_without_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setattr(
            "snapctl.core.config.loader.DEFAULT_CONFIG_PATH", tmp_path / "absent.yml"
        )
        config = load_config()
        assert config.backend == "snapper"
        assert config.snapper.config == "root"
        assert config.bootloader.command == ["update-grub"]

    def test_full_file(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", """\
            backend: btrfs
            use_sudo: false
            btrfs:
              snapshot_dir: /mnt/snaps
            retention:
              number_limit: 4
              number_limit_important: 2
            bootloader:
              mode: daemon
              service: grub-btrfsd
            package_manager:
              commands:
                - [dnf, upgrade, -y]
        """)
        config = load_config(path)
        assert config.backend == "btrfs"
        assert config.use_sudo is False
        assert config.btrfs.snapshot_dir == "/mnt/snaps"
        assert config.retention.number_limit == 4
        assert config.bootloader.mode == "daemon"
        assert config.package_manager.commands == [["dnf", "upgrade", "-y"]]

    def test_empty_file(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", "")
        assert load_config(path).backend == "snapper"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", "backend: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_unknown_backend(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", "backend: zfs\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)

    def test_negative_limit(self, tmp_path):
        path = _write(tmp_path / "snapctl.yml", "retention:\n  number_limit: -1\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_env_var(self, monkeypatch, tmp_path):
        path = _write(tmp_path / "env.yml", "backend: btrfs\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert find_config_file() == path
        assert load_config().backend == "btrfs"

    def test_explicit_beats_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "env.yml"))
        explicit = tmp_path / "explicit.yml"
        assert find_config_file(explicit) == explicit


# ── Snapper Retention Tests ──────────────────────────────────────────


class TestRetentionSettings:
    def test_read_shell_config(self, snapper_configs):
        path = _write(snapper_configs / "root", """\
            # subvolume to snapshot
            SUBVOLUME="/"
            NUMBER_LIMIT="10"
            NUMBER_LIMIT_IMPORTANT='5'
            not a setting
        """)
        values = read_shell_config(path)
        assert values["SUBVOLUME"] == "/"
        assert values["NUMBER_LIMIT"] == "10"
        assert values["NUMBER_LIMIT_IMPORTANT"] == "5"
        assert "not a setting" not in values

    def test_missing_shell_config(self, tmp_path):
        assert read_shell_config(tmp_path / "absent") == {}

    def test_snapper_values_win(self, snapper_configs):
        path = _write(snapper_configs / "root", """\
            NUMBER_LIMIT="2-10"
            NUMBER_LIMIT_IMPORTANT="4"
            NUMBER_MIN_AGE="1800"
        """)
        config = SnapctlConfig(snapper={"config_dir": str(snapper_configs)})
        policy = load_retention_policy(config)
        assert policy.number_limit == 10
        assert policy.number_limit_important == 4
        assert policy.number_min_age == 1800
        assert policy.source == str(path)

    def test_unparseable_value_uses_default(self, snapper_configs):
        _write(snapper_configs / "root", 'NUMBER_LIMIT="lots"\n')
        config = SnapctlConfig(
            snapper={"config_dir": str(snapper_configs)},
            retention={"number_limit": 7},
        )
        assert load_retention_policy(config).number_limit == 7

    def test_snapper_config_absent(self, snapper_configs):
        config = SnapctlConfig(
            snapper={"config_dir": str(snapper_configs)},
            retention={"number_limit": 6, "number_limit_important": 3},
        )
        policy = load_retention_policy(config)
        assert (policy.number_limit, policy.number_limit_important) == (6, 3)
        assert policy.source == "snapctl.yml"

    def test_btrfs_uses_snapctl_settings(self, snapper_configs):
        _write(snapper_configs / "root", 'NUMBER_LIMIT="50"\n')
        config = SnapctlConfig(
            backend="btrfs",
            snapper={"config_dir": str(snapper_configs)},
            retention={"number_limit": 8},
        )
        assert load_retention_policy(config).number_limit == 8


# ── Factory Tests ────────────────────────────────────────────────────


class TestFactory:
    def test_snapper_service(self, snapper_configs):
        config = SnapctlConfig(snapper={"config_dir": str(snapper_configs), "config": "home"})
        service = build_service(config, MockRunner())
        assert isinstance(service.store, SnapperStore)
        assert service.store.config == "home"
        assert isinstance(service.bootloader, CommandSync)
        assert service.cleanup_algorithm == "number"

    def test_btrfs_service(self):
        config = SnapctlConfig(backend="btrfs", btrfs={"snapshot_dir": "/mnt/snaps"})
        service = build_service(config, MockRunner())
        assert isinstance(service.store, BtrfsStore)
        assert str(service.store.snapshot_dir) == "/mnt/snaps"

    def test_package_manager_commands(self):
        config = SnapctlConfig(
            backend="btrfs", package_manager={"commands": [["pacman", "-Syu"]]}
        )
        service = build_service(config, MockRunner())
        assert service.package_manager.commands == [["pacman", "-Syu"]]

    def test_unknown_backend(self):
        config = SnapctlConfig.model_construct(backend="zfs")
        with pytest.raises(ConfigError, match="zfs"):
            build_service(config, MockRunner())

    def test_bootloader_modes(self):
        runner = MockRunner()
        assert isinstance(build_bootloader(SnapctlConfig(), runner), CommandSync)
        daemon = build_bootloader(SnapctlConfig(bootloader={"mode": "daemon"}), runner)
        assert isinstance(daemon, DaemonSync)
        assert isinstance(daemon.fallback, CommandSync)
        none = build_bootloader(SnapctlConfig(bootloader={"mode": "none"}), runner)
        assert isinstance(none, NullSync)
