"""Verbosity-aware step output.

Every state of an iteration announces itself with a short, emoji-prefixed
line on stdout. Those lines are the product's user interface, so they go
through :func:`print_output` rather than ``logging``: quiet mode keeps only
the essentials, verbose mode adds command details.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Any, Optional

VERBOSITY_ENV = "CONTINUOUS_OPENCODE_VERBOSITY"
VERBOSITY_LEVELS = ("quiet", "normal", "verbose")


@dataclass
class OutputConfig:
    """Output configuration.

    Attributes:
        verbosity: Output level - "quiet", "normal", or "verbose"
    """

    verbosity: str = "normal"


_output_config: Optional[OutputConfig] = None


def get_output_config() -> OutputConfig:
    """Return the active output config, falling back to the environment."""
    if _output_config is not None:
        return _output_config

    verbosity = os.environ.get(VERBOSITY_ENV, "normal")
    if verbosity not in VERBOSITY_LEVELS:
        verbosity = "normal"
    return OutputConfig(verbosity=verbosity)


def set_output_config(config: Optional[OutputConfig]) -> None:
    """Set (or with None, reset) the global output configuration."""
    global _output_config
    _output_config = config


def print_output(message: str, level: str = "normal", file: Any = None, end: str = "\n") -> None:
    """Print a message if the current verbosity allows it.

    - "error" messages: always printed, to stderr unless a file is given
    - "quiet" messages: printed in every mode
    - "normal" messages: suppressed in quiet mode
    - "verbose" messages: only printed in verbose mode
    """
    config = get_output_config()

    if level == "error":
        should_print = True
        if file is None:
            file = sys.stderr
    elif level == "quiet":
        should_print = True
    elif level == "verbose":
        should_print = config.verbosity == "verbose"
    else:
        should_print = config.verbosity in ("normal", "verbose")

    if should_print:
        if file is None:
            file = sys.stdout
        print(message, file=file, end=end, flush=True)


def warn(message: str) -> None:
    """Print a recoverable-failure line with the warning marker."""
    print_output(f"⚠️  {message}", level="quiet")
