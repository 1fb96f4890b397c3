"""Thin wrappers over the git commands the loop drives.

Methods return the raw :class:`SubprocessResult`; deciding whether a failure
matters is left to the iteration state that issued the command.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from .config import PR_STATE_FILE
from .subprocess_helper import Runner, SubprocessResult, run_quietly, run_subprocess

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_CANDIDATES = ("main", "master")


def generate_branch_name(
    prefix: str,
    iteration: int,
    now: Optional[datetime] = None,
    token: Optional[str] = None,
) -> str:
    """``<prefix>iteration-<n>/<YYYY-mm-dd-HHMMSS>-<8 hex chars>``.

    The timestamp plus random suffix keeps names unique across runs and
    across parallel worktrees that share a remote.
    """
    now = now or datetime.now()
    token = token or secrets.token_hex(4)
    return f"{prefix}iteration-{iteration}/{now.strftime('%Y-%m-%d-%H%M%S')}-{token}"


class Git:
    def __init__(self, cwd: Path, run: Runner = run_subprocess) -> None:
        self.cwd = cwd
        self._run = run

    def _git(self, *args: str) -> SubprocessResult:
        return run_quietly(self._run, ["git", *args], cwd=self.cwd)

    def remote_url(self, remote: str = "origin") -> str:
        result = self._git("remote", "get-url", remote)
        return result.stdout.strip() if result.success else ""

    def create_and_checkout(self, branch: str) -> SubprocessResult:
        return self._git("checkout", "-b", branch)

    def checkout(self, branch: str) -> SubprocessResult:
        return self._git("checkout", branch)

    def checkout_default_branch(
        self, candidates: Iterable[str] = DEFAULT_BRANCH_CANDIDATES
    ) -> Optional[str]:
        """Switch to the first default branch that exists; None if none worked."""
        for name in candidates:
            if self.checkout(name).success:
                return name
        return None

    def status_lines(self, ignore: Iterable[str] = (PR_STATE_FILE,)) -> List[str]:
        """``git status --porcelain`` lines, minus the controller's own state files."""
        result = self._git("status", "--porcelain")
        if result.failed:
            logger.warning("git status failed: %s", result.stderr.strip())
            return []
        ignored = {p.rstrip("/") for p in ignore}
        lines: List[str] = []
        for ln in result.stdout.splitlines():
            if not ln.strip():
                continue
            # porcelain: XY<space>path
            path = ln[3:].strip().strip('"') if len(ln) > 3 else ln.strip()
            if path in ignored or (path.endswith(".tmp") and path[:-4] in ignored):
                continue
            lines.append(ln)
        return lines

    def has_changes(self) -> bool:
        return bool(self.status_lines())

    def commit_all(self, subject: str, body: str = "") -> SubprocessResult:
        added = self._git("add", "-A", "--", ".", f":(exclude){PR_STATE_FILE}")
        if added.failed:
            return added
        argv = ["commit", "-m", subject]
        if body:
            argv.extend(["-m", body])
        return self._git(*argv)

    def push(self, branch: str, remote: str = "origin") -> SubprocessResult:
        return self._git("push", "-u", remote, branch)

    def pull(self) -> SubprocessResult:
        return self._git("pull")

    def delete_branch(self, branch: str) -> SubprocessResult:
        return self._git("branch", "-D", branch)
