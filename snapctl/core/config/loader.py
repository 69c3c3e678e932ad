"""
Configuration loader — reads snapctl.yml and store retention settings.

Lookup order for the config file:

    --config option  >  SNAPCTL_CONFIG env var  >  /etc/snapctl/snapctl.yml

A missing file is not an error: built-in defaults (Snapper, config
"root") apply. An unreadable or invalid file raises ConfigError.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml

from snapctl.core.errors import SnapctlError
from snapctl.core.models.config import SnapctlConfig
from snapctl.core.services.retention import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/snapctl/snapctl.yml")
CONFIG_ENV_VAR = "SNAPCTL_CONFIG"


class ConfigError(SnapctlError):
    """Raised when snapctl configuration is invalid or unreadable."""


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Resolve which config file to use.

    An explicit path (option or env var) is returned even if it does not
    exist, so load_config can report it. The system default is only
    returned when present.
    """
    if explicit is not None:
        return explicit

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH

    return None


def load_config(path: Path | None = None) -> SnapctlConfig:
    """Load and validate snapctl configuration.

    Raises:
        ConfigError: If an explicitly requested file is missing or invalid.
    """
    path = find_config_file(path)
    if path is None:
        logger.debug("No config file found, using defaults")
        return SnapctlConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return SnapctlConfig()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = SnapctlConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded config from %s (backend=%s)", path, config.backend)
    return config


# ── Store retention settings ────────────────────────────────────


def read_shell_config(path: Path) -> dict[str, str]:
    """Parse a shell-style ``KEY="value"`` file such as a Snapper config.

    Comments and malformed lines are ignored. Missing files yield {}.
    """
    if not path.is_file():
        return {}

    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep or not key.strip().isidentifier():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def _limit(raw: str | None, default: int) -> int:
    """Parse a Snapper limit, which may be a plain number or a 'min-max' range."""
    if not raw:
        return default
    upper = raw.rsplit("-", 1)[-1].strip()
    try:
        return max(int(upper), 0)
    except ValueError:
        logger.warning("Ignoring unparseable retention value %r", raw)
        return default


def load_retention_policy(config: SnapctlConfig) -> RetentionPolicy:
    """Retention limits for the configured backend.

    Snapper keeps its own NUMBER_LIMIT / NUMBER_LIMIT_IMPORTANT /
    NUMBER_MIN_AGE; those win when present. The raw Btrfs backend uses the
    ``retention`` section of snapctl.yml.
    """
    defaults = config.retention

    if config.backend == "snapper":
        snapper_path = Path(config.snapper.config_dir) / config.snapper.config
        try:
            values = read_shell_config(snapper_path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", snapper_path, e)
            values = {}
        if values:
            return RetentionPolicy(
                number_limit=_limit(values.get("NUMBER_LIMIT"), defaults.number_limit),
                number_limit_important=_limit(
                    values.get("NUMBER_LIMIT_IMPORTANT"), defaults.number_limit_important
                ),
                number_min_age=_limit(values.get("NUMBER_MIN_AGE"), defaults.number_min_age),
                source=str(snapper_path),
            )

    return RetentionPolicy(
        number_limit=defaults.number_limit,
        number_limit_important=defaults.number_limit_important,
        number_min_age=defaults.number_min_age,
        source="snapctl.yml",
    )
