"""
Logging configuration — central setup for the ``provision`` CLI.

Called once at startup by main.py. Every module that does
``logger = logging.getLogger(__name__)`` inherits this config; library
users who never call it get Python's defaults.

Levels are resolved in precedence order:
    CLI flag  >  PROV_LOG_LEVEL env var  >  WARNING (default)

Optional file output via PROV_LOG_FILE / PROV_LOG_FILE_LEVEL env vars.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "PROV_LOG_LEVEL"
ENV_LOG_FILE = "PROV_LOG_FILE"
ENV_LOG_FILE_LEVEL = "PROV_LOG_FILE_LEVEL"

# ── Format strings ──────────────────────────────────────────────

# WARNING level: message only
_FMT_MINIMAL = "%(message)s"

# INFO level: engine lifecycle with timestamps
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level: per-action results with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# File output: always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Standard-library loggers that get chatty below WARNING
_NOISY_LOGGERS = ("asyncio", "concurrent.futures")


def resolve_level(cli_level: str | None = None) -> str:
    """Pick the console level: CLI flag, then environment, then WARNING."""
    if cli_level:
        return cli_level.upper()
    return os.environ.get(ENV_LOG_LEVEL, "WARNING").upper()


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name. None falls back to PROV_LOG_LEVEL.
        log_file: Optional log file. None falls back to PROV_LOG_FILE.
        log_file_level: Level for the log file. None falls back to
            PROV_LOG_FILE_LEVEL, then to the console level.
        quiet_third_party: Keep chatty loggers at WARNING unless the
            console is at DEBUG.
    """
    numeric_level = _parse_level(resolve_level(level))
    log_file = log_file or os.environ.get(ENV_LOG_FILE) or None
    log_file_level = log_file_level or os.environ.get(ENV_LOG_FILE_LEVEL) or None

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective_level = numeric_level

    # ── File handler (optional) ─────────────────────────────────
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Convert a level name to its numeric constant (WARNING if unknown)."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
