"""Presence checks for the external tools a run depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .errors import MissingDependencyError
from .subprocess_helper import which

REQUIRED_TOOLS = (
    ("git", "Install git (https://git-scm.com/downloads)."),
    ("gh", "Install the GitHub CLI (https://cli.github.com) and run `gh auth login`."),
    ("opencode", "Please install from https://opencode.ai"),
)


@dataclass
class ToolStatus:
    name: str
    found: bool
    path: Optional[str]
    hint: Optional[str]


def check_tools() -> List[ToolStatus]:
    results: List[ToolStatus] = []
    for name, hint in REQUIRED_TOOLS:
        path = which(name)
        found = path is not None
        results.append(ToolStatus(name=name, found=found, path=path, hint=None if found else hint))
    return results


def ensure_dependencies() -> None:
    """Raise for the first required tool missing from PATH."""
    for status in check_tools():
        if not status.found:
            raise MissingDependencyError(status.name, status.hint or "")
