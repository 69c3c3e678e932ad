"""
Logging configuration — one setup shared by every verb entry point.

Each verb is its own short-lived process, so logging is configured once
per process by the first click callback that runs. Every module uses
``logger = logging.getLogger(__name__)`` and inherits this config.

Levels are resolved in precedence order:
    --debug / --verbose / --quiet  >  SNAPCTL_LOG_LEVEL env var  >  WARNING

SNAPCTL_LOG_FILE adds a file handler (level from SNAPCTL_LOG_FILE_LEVEL),
useful for keeping a history of snapshot deletions.
"""

from __future__ import annotations

import logging
import os
import sys

LOG_LEVEL_ENV = "SNAPCTL_LOG_LEVEL"
LOG_FILE_ENV = "SNAPCTL_LOG_FILE"
LOG_FILE_LEVEL_ENV = "SNAPCTL_LOG_FILE_LEVEL"

# WARNING level — the status lines already tell the story
_FMT_MINIMAL = "snapctl: %(levelname)s: %(message)s"

# INFO level — timestamped with module context
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level and file output — full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

_configured = False


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LOG_LEVEL_ENV, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for this process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the console level.
    """
    global _configured
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            root.warning("Cannot open log file %s: %s", log_file, e)
        else:
            fh.setLevel(file_level)
            fh.setFormatter(logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_FILE))
            root.addHandler(fh)

    root.setLevel(effective_level)
    logging.raiseExceptions = False
    _configured = True


def configure_from_flags(verbose: bool = False, quiet: bool = False, debug: bool = False) -> None:
    """Set up logging from CLI flags and SNAPCTL_* env vars.

    Later calls only reconfigure when a flag was actually given, so a
    group callback and a subcommand callback can both call this.
    """
    if _configured and not (verbose or quiet or debug):
        return
    setup_logging(
        level=resolve_level(verbose, quiet, debug),
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
    )


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
