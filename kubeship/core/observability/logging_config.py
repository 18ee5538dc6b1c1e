"""
Logging setup for the kubeship CLI.

``setup_logging`` runs once from the click group callback. Modules log
through ``logging.getLogger(__name__)`` and never configure handlers.

Console level precedence: ``--debug/-v/-q``, then ``KUBESHIP_LOG_LEVEL``,
then WARNING. Progress goes to INFO and subprocess chatter to DEBUG, so
the console format grows with the level. ``KUBESHIP_LOG_FILE`` adds a
file that always records the full DEBUG trail of a run, whatever the
console shows.
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV = "KUBESHIP_LOG_LEVEL"
FILE_ENV = "KUBESHIP_LOG_FILE"

_TIME = "%H:%M:%S"

# (format, datefmt) by the most verbose level they apply to
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", _TIME),
    (logging.INFO, "%(asctime)s %(message)s", _TIME),
)
_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s  %(message)s"


def resolve_level(flag_level: str | None = None) -> str:
    """Pick the console level: explicit flag, then env var, then WARNING."""
    return flag_level or os.environ.get(LEVEL_ENV) or "WARNING"


def _parse_level(level: str | None) -> int:
    numeric = getattr(logging, (level or "").upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def setup_logging(level: str = "WARNING", log_file: str | None = None) -> None:
    """Install the console handler, plus a file handler when one is asked for.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Path of a DEBUG log file. Falls back to ``KUBESHIP_LOG_FILE``.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(console_level)

    log_file = log_file or os.environ.get(FILE_ENV)
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
