"""Diagnostic logging for continuous-opencode.

The step lines a user watches (``🔄 (3) Starting iteration...``) are printed by
:mod:`continuous_opencode.output`. Underneath them, modules log through the
standard ``logging`` tree: every command executed at DEBUG, recoverable
surprises at WARNING. This module wires that tree to stderr, and optionally
to a log file that records everything.

Usage:
    >>> setup_logging(verbose=True, log_file=Path("cop.log"))
    >>> logging.getLogger(__name__).debug("exec: git status --porcelain")
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s"

# Loggers of libraries we pull in; their INFO output is noise here.
QUIET_LIBRARIES = ("urllib3", "requests")


def console_level(verbose: bool = False, quiet: bool = False) -> int:
    """Stderr threshold: quiet wins over verbose, the default shows only problems."""
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.WARNING


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    quiet: bool = False,
) -> logging.Logger:
    """Install fresh handlers on the root logger and return it.

    Safe to call more than once; earlier handlers are replaced, not stacked.

    Args:
        verbose: Log DEBUG to stderr
        log_file: Also append every record, DEBUG included, to this file
        quiet: Log only errors to stderr
    """
    level = console_level(verbose=verbose, quiet=quiet)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    handlers: list[logging.Handler] = [console]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        to_file = logging.FileHandler(log_file, encoding="utf-8")
        to_file.setLevel(logging.DEBUG)
        to_file.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(to_file)

    root = logging.getLogger()
    # The file handler needs DEBUG records to reach it even when stderr is quieter.
    root.setLevel(logging.DEBUG if log_file else level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
