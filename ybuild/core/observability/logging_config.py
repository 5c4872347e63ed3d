"""
Logging configuration for the ``yb`` entrypoint.

``main.py`` calls ``setup_logging`` once before dispatching a command;
modules only ever do ``logger = logging.getLogger(__name__)``.

Level precedence:
    CLI flag (-v / --debug / -q)  >  YB_LOG_LEVEL  >  WARNING

``YB_LOG_FILE`` adds a file handler; ``YB_LOG_FILE_LEVEL`` sets its level.
Build command output never goes through logging. It is streamed straight
to the terminal, so log records stay on stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# ── Formats ─────────────────────────────────────────────────────

_CLOCK = "%H:%M:%S"

# (threshold, format, datefmt); the first threshold >= level wins
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", _CLOCK),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", _CLOCK),
    (logging.CRITICAL, "yb: %(levelname)s: %(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(process)d %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Libraries whose INFO chatter would drown build output
_NOISY_LOGGERS = ("urllib3", "charset_normalizer", "asyncio", "concurrent.futures")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler and, optionally, a file handler.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: File to mirror log records into; parent dirs are created.
        log_file_level: Level for the file handler, defaulting to ``level``.
        quiet_third_party: Pin chatty library loggers to WARNING unless the
            console is at DEBUG.
    """
    console_level = _parse_level(level)
    handlers: list[logging.Handler] = [_console_handler(console_level)]

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(Path(log_file), file_level))

    root = logging.getLogger()
    root.handlers[:] = handlers
    # The root must pass whatever the most verbose handler wants.
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def resolve_level(verbose: bool, debug: bool, quiet: bool, env_level: str | None) -> str:
    """Pick the console level from CLI flags, then the environment."""
    for flag, name in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if flag:
            return name
    if env_level and _is_level_name(env_level):
        return env_level.upper()
    return "WARNING"


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _is_level_name(name: str) -> bool:
    return isinstance(logging.getLevelName(name.upper()), int)


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level or not _is_level_name(level):
        return logging.WARNING
    return logging.getLevelName(level.upper())
