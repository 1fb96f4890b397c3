"""Git worktree management for isolated concurrent runs.

Two controllers pointed at the same repository would trample each other's
branches and working files. Giving each one a named worktree (its own
checkout and its own ``worktree-<name>`` branch) keeps them apart.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .errors import ContinuousOpencodeError
from .output import print_output, warn
from .subprocess_helper import Runner, SubprocessResult, run_quietly, run_subprocess

logger = logging.getLogger(__name__)


class WorktreeError(ContinuousOpencodeError):
    """Base exception for worktree operations."""

    pass


class WorktreeCreationError(WorktreeError):
    """Failed to create worktree."""

    pass


class WorktreeRemovalError(WorktreeError):
    """Failed to remove worktree."""

    pass


class WorktreeManager:
    """Creates, enters, leaves and removes the run's named worktree.

    ``setup()`` changes the process working directory into the worktree;
    ``cleanup()`` changes back before removing it.
    """

    def __init__(
        self,
        project_root: Path,
        name: str = "",
        base_dir: str = "",
        cleanup_enabled: bool = False,
        dry_run: bool = False,
        run: Runner = run_subprocess,
    ):
        """Initialize worktree manager.

        Args:
            project_root: Root directory of the git repository
            name: Worktree name; empty disables worktree handling entirely
            base_dir: Directory holding worktrees, relative to project_root
            cleanup_enabled: Remove the worktree when the run ends
            dry_run: Print actions instead of performing them
            run: Command runner (injectable for tests)
        """
        self.project_root = project_root
        self.name = name
        self.base_dir = (project_root / base_dir) if base_dir else project_root.parent
        self.cleanup_enabled = cleanup_enabled
        self.dry_run = dry_run
        self._run = run
        self._previous_cwd: Optional[Path] = None

    @property
    def enabled(self) -> bool:
        return bool(self.name)

    @property
    def path(self) -> Path:
        return self.base_dir / self.name

    @property
    def branch(self) -> str:
        return f"worktree-{self.name}"

    def _git(self, *args: str, cwd: Optional[Path] = None) -> SubprocessResult:
        return run_quietly(self._run, ["git", *args], cwd=cwd or self.project_root)

    def setup(self) -> Optional[Path]:
        """Create the worktree if needed and move into it.

        Returns:
            The worktree path, or None when no worktree is configured

        Raises:
            WorktreeCreationError: If ``git worktree add`` fails
        """
        if not self.enabled:
            return None

        if self.dry_run:
            print_output(f"🌲 [DRY RUN] Would use worktree: {self.path}")
            return None

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorktreeCreationError(f"Cannot create {self.base_dir}: {e}") from e

        if not self.path.is_dir():
            print_output(f"🌲 Creating worktree: {self.path}")
            result = self._git("worktree", "add", str(self.path), "-b", self.branch)
            if result.failed:
                raise WorktreeCreationError(
                    f"Failed to create worktree: {result.stderr.strip()}"
                )

        self._previous_cwd = Path.cwd()
        os.chdir(self.path)

        pulled = self._git("pull", cwd=self.path)
        if pulled.failed:
            logger.debug("git pull in worktree failed: %s", pulled.stderr.strip())
        print_output(f"📁 Working in: {self.path}")
        return self.path

    def cleanup(self) -> None:
        """Leave and remove the worktree when cleanup was requested.

        Raises:
            WorktreeRemovalError: If ``git worktree remove`` fails
        """
        if not self.enabled or not self.cleanup_enabled:
            return

        if self.dry_run:
            print_output(f"🗑️  [DRY RUN] Would remove worktree: {self.path}")
            return

        if self._previous_cwd is not None:
            os.chdir(self._previous_cwd)
            self._previous_cwd = None

        if not self.path.is_dir():
            return

        print_output(f"🗑️  Removing worktree: {self.path}")
        result = self._git("worktree", "remove", str(self.path))
        if result.failed:
            raise WorktreeRemovalError(
                f"Failed to remove worktree at {self.path}: {result.stderr.strip()}"
            )

        deleted = self._git("branch", "-D", self.branch)
        if deleted.failed:
            logger.debug("Branch delete failed (ignored): %s", deleted.stderr.strip())

    def list_worktrees(self) -> str:
        """Raw ``git worktree list`` output.

        Raises:
            WorktreeError: If git cannot list worktrees (e.g. not a repository)
        """
        result = self._git("worktree", "list")
        if result.failed:
            raise WorktreeError(f"git worktree list failed: {result.stderr.strip()}")
        return result.stdout

    def cleanup_quietly(self) -> None:
        try:
            self.cleanup()
        except WorktreeRemovalError as e:
            logger.warning("%s", e)
            warn(str(e))
