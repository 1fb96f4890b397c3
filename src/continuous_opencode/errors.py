"""Fatal error types.

Anything raised from here ends the run with exit code 1. Every other failure
during a run is recoverable and reported inline instead of raised.
"""

from __future__ import annotations


class ContinuousOpencodeError(Exception):
    """Base class for fatal controller errors."""

    pass


class ConfigError(ContinuousOpencodeError):
    """Required configuration is missing or invalid."""

    pass


class MissingDependencyError(ContinuousOpencodeError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, hint: str = "") -> None:
        self.tool = tool
        self.hint = hint
        message = f"{tool} is not installed"
        if hint:
            message += f"\n   {hint}"
        super().__init__(message)
