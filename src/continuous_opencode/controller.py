"""The outer loop: set up, iterate until a stopping condition fires, tear down."""

from __future__ import annotations

import logging
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from .agents import OpenCodeAgent
from .config import RunConfig
from .cost import CostTracker, format_cents
from .doctor import ensure_dependencies
from .duration import format_duration
from .executor import IterationExecutor, IterationResult
from .git import Git
from .github import GhCli
from .notes import init_notes_file
from .output import print_output
from .policy import StopReason, post_iteration_stop_reason, stop_reason
from .remote import detect_remote
from .server import AgentServerManager
from .state import LoopState, PullRequestHandle
from .subprocess_helper import Runner, run_subprocess
from .worktree import WorktreeManager

logger = logging.getLogger(__name__)


def _raise_system_exit(signum: int, frame: Any) -> None:
    raise SystemExit(128 + signum)


class LoopController:
    """Owns the run: its state, its server and its worktree.

    Collaborators that touch the outside world (command runner, process
    launcher, sleep, clock, dependency check) can be swapped out, which is
    how the tests drive whole runs without git remotes or a real agent.
    """

    def __init__(
        self,
        config: RunConfig,
        cwd: Optional[Path] = None,
        run: Runner = run_subprocess,
        popen: Callable[..., Any] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        check_dependencies: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config
        self.cwd = cwd or Path.cwd()
        self._runner = run
        self._popen = popen
        self._sleep = sleep
        self._clock = clock
        self._check_dependencies = check_dependencies
        self.state: Optional[LoopState] = None
        self.results: List[IterationResult] = []
        self.stop: Optional[StopReason] = None

    def run(self) -> int:
        """Execute the whole run and return the process exit code.

        Raises:
            ConfigError: Prompt or stopping limit missing (nothing has run yet)
            MissingDependencyError: git, gh or opencode is not on PATH
            WorktreeCreationError: The requested worktree could not be created
        """
        self.config.validate()
        (self._check_dependencies or ensure_dependencies)()

        previous = None
        if threading.current_thread() is threading.main_thread():
            previous = signal.signal(signal.SIGTERM, _raise_system_exit)
        try:
            return self._run()
        finally:
            if previous is not None:
                signal.signal(signal.SIGTERM, previous)

    def _run(self) -> int:
        cfg = self.config
        remote = detect_remote(self.cwd, cfg.owner, cfg.repo, run=self._runner)

        worktree = WorktreeManager(
            self.cwd,
            name=cfg.worktree_name,
            base_dir=cfg.worktree_base_dir,
            cleanup_enabled=cfg.cleanup_worktree,
            dry_run=cfg.dry_run,
            run=self._runner,
        )
        workdir = worktree.setup() or self.cwd

        state = LoopState(has_remote=remote.has_remote, started_at=self._clock())
        self.state = state
        try:
            init_notes_file(workdir, cfg.notes_file, dry_run=cfg.dry_run)

            agent = OpenCodeAgent(cfg.agent_args, run=self._runner, cwd=workdir)
            server = AgentServerManager(
                agent.serve_argv(cfg.server_port),
                port=cfg.server_port,
                enabled=not cfg.disable_commits,
                dry_run=cfg.dry_run,
                warmup_seconds=cfg.server_warmup_seconds,
                cwd=workdir,
                popen=self._popen,
                sleep=self._sleep,
            )
            with server:
                state.server_url = server.url
                self._print_banner(state)
                executor = IterationExecutor(
                    cfg,
                    agent=agent,
                    git=Git(workdir, run=self._runner),
                    gh=GhCli(workdir, owner=remote.owner, repo=remote.repo, run=self._runner),
                    cost=CostTracker(cfg, agent, workdir),
                    pr_handle=PullRequestHandle(workdir),
                    sleep=self._sleep,
                    worktree_branch=worktree.branch if worktree.enabled else "",
                )
                self._loop(executor, state)
        finally:
            worktree.cleanup_quietly()
            self._print_summary(state)
        return 0

    def _loop(self, executor: IterationExecutor, state: LoopState) -> None:
        cfg = self.config
        reason = stop_reason(cfg, state, now=self._clock())
        while reason is None:
            self.results.append(executor.run(state))
            print_output("")
            reason = post_iteration_stop_reason(cfg, state) or stop_reason(
                cfg, state, now=self._clock()
            )
            if reason is None:
                self._sleep(cfg.sleep_seconds_between_iters)

        self.stop = reason
        logger.info("Stopping: %s", reason.value)
        print_output(reason.describe(cfg))

    def _print_banner(self, state: LoopState) -> None:
        cfg = self.config
        print_output("🚀 Starting Continuous OpenCode...")
        print_output(f"   Prompt: {cfg.prompt}")
        if cfg.max_runs:
            print_output(f"   Max iterations: {cfg.max_runs}")
        if cfg.max_cost is not None:
            print_output(f"   Max cost: ${cfg.max_cost}")
        if cfg.max_duration is not None:
            print_output(f"   Max duration: {format_duration(cfg.max_duration)}")
        if cfg.completion_threshold > 0:
            print_output(
                f"   Completion threshold: {cfg.completion_threshold} consecutive signals"
            )
        if state.server_url:
            print_output(f"   Server: {state.server_url}")
        if cfg.dry_run:
            print_output("   Mode: dry run (no changes will be made)")
        print_output("")

    def _print_summary(self, state: LoopState) -> None:
        minutes = int(state.elapsed(self._clock()) // 60)
        print_output(f"🎉 Done with {state.iteration} iterations in {minutes} minutes", level="quiet")
        print_output(f"💰 Total cost: {format_cents(state.total_cost_cents)}", level="quiet")
