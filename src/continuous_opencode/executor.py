"""One iteration: branch, agent, review, commit, PR, CI wait, merge.

Each step may end the iteration early (a failed push skips the PR, a failed
check skips the merge) but nothing in here ends the run. Failures of the
external tools are printed as warnings and the next step, or the next
iteration, carries on. Under dry run every side-effecting step prints what it
would have done instead.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .agents import OpenCodeAgent, build_iteration_prompt
from .config import RunConfig
from .cost import CostTracker
from .git import DEFAULT_BRANCH_CANDIDATES, Git, generate_branch_name
from .github import CheckOutcome, CheckSummary, GhCli, GitHubError, wait_for_checks
from .output import print_output, warn
from .parsing import contains_completion_signal, extract_share_link
from .spinner import Spinner
from .state import LoopState, PullRequestHandle

logger = logging.getLogger(__name__)

DRY = "   [DRY RUN]"


@dataclass
class IterationResult:
    iteration: int
    branch: str = ""
    agent_exit_code: Optional[int] = None
    completion_signal: bool = False
    committed: bool = False
    pr_number: Optional[str] = None
    check_outcome: Optional[CheckOutcome] = None
    merged: bool = False


def build_pr_body(prompt: str, share_link: str = "") -> str:
    body = f"Automated PR created by Continuous OpenCode\n\n**Prompt:** {prompt}"
    if share_link:
        body += f"\n\n**Share Link:** {share_link}"
    return body


class IterationExecutor:
    def __init__(
        self,
        config: RunConfig,
        agent: OpenCodeAgent,
        git: Git,
        gh: GhCli,
        cost: CostTracker,
        pr_handle: PullRequestHandle,
        sleep: Callable[[float], None] = time.sleep,
        worktree_branch: str = "",
    ) -> None:
        self.config = config
        self.agent = agent
        self.git = git
        self.gh = gh
        self.cost = cost
        self.pr_handle = pr_handle
        self._sleep = sleep
        self.worktree_branch = worktree_branch

    def uses_branches(self, state: LoopState) -> bool:
        cfg = self.config
        return state.has_remote and not cfg.disable_branches and not cfg.disable_commits

    def _default_branches(self) -> List[str]:
        # A linked worktree cannot check out a branch the main worktree holds,
        # so its own branch goes first.
        names = [self.worktree_branch, self.config.base_branch, *DEFAULT_BRANCH_CANDIDATES]
        return list(dict.fromkeys(n for n in names if n))

    # -------------------------
    # States
    # -------------------------

    def create_branch(self, state: LoopState) -> str:
        branch = generate_branch_name(self.config.branch_prefix, state.iteration)
        print_output(f"🌿 Creating branch: {branch}")
        if self.config.dry_run:
            print_output(f"{DRY} Would run: git checkout -b {branch}")
            return branch
        result = self.git.create_and_checkout(branch)
        if result.failed:
            warn(f"Could not create branch {branch}: {result.stderr.strip()}")
        return branch

    def run_agent(self, state: LoopState, result: IterationResult) -> None:
        cfg = self.config
        print_output("🤖 Running OpenCode...")
        if cfg.dry_run:
            print_output(f"{DRY} Would run: opencode {cfg.prompt}")
            result.agent_exit_code = 0
            return

        prompt = build_iteration_prompt(cfg.prompt, cfg.notes_file, cfg.completion_signal)
        print_output("   Running: opencode...")
        with Spinner("Running OpenCode..."):
            run = self.agent.invoke(prompt, server_url=state.server_url, share=True)
        result.agent_exit_code = run.returncode

        state.share_link = extract_share_link(run.output)
        if run.output.strip():
            print_output(f"📝 Output: {run.output.rstrip()}")
        if contains_completion_signal(run.output, cfg.completion_signal):
            result.completion_signal = True
            count = state.record_completion_signal()
            print_output(
                f"   ✨ Completion signal detected ({count}/{cfg.completion_threshold})"
            )
        if not run.ok:
            warn(f"OpenCode encountered an error (exit {run.returncode})")

        self.cost.update(state)

    def run_review(self, state: LoopState) -> None:
        review_prompt = self.config.review_prompt
        if not review_prompt:
            return
        print_output("🔍 Running reviewer pass...")
        if self.config.dry_run:
            print_output(f"{DRY} Would run reviewer: {review_prompt}")
            return

        print_output(f"   Running: opencode {review_prompt}")
        run = self.agent.invoke(review_prompt, server_url=state.server_url)
        if run.output.strip():
            print_output(f"📝 Reviewer output: {run.output.rstrip()}")
        if not run.ok:
            warn(f"Reviewer pass exited with {run.returncode}")

        self.cost.update(state)

    def commit(self, state: LoopState) -> bool:
        cfg = self.config
        if cfg.disable_commits:
            print_output("⏭️  Skipping commits (--disable-commits)")
            return False

        print_output("💬 Committing changes...")
        if cfg.dry_run:
            print_output(f"{DRY} Would commit changes")
            return False

        if not self.git.has_changes():
            count = state.record_no_change()
            print_output(
                f"   ℹ️  No changes to commit ({count}/{cfg.no_changes_threshold} consecutive)"
            )
            return False

        state.record_change()
        committed = self.git.commit_all(
            f"OpenCode iteration {state.iteration}", f"Prompt: {cfg.prompt}"
        )
        if committed.failed:
            warn(f"Commit failed: {committed.stderr.strip() or committed.stdout.strip()}")
            return False
        print_output("   ✅ Changes committed")
        return True

    def open_pull_request(self, state: LoopState, branch: str) -> Optional[str]:
        cfg = self.config
        print_output("📤 Pushing branch...")
        if cfg.dry_run:
            print_output(f"{DRY} Would push branch: {branch}")
            print_output(f"{DRY} Would create pull request into {cfg.base_branch}")
            return None

        pushed = self.git.push(branch)
        if pushed.failed:
            warn(f"Push failed: {pushed.stderr.strip()}")
            warn("Failed to create PR")
            return None

        print_output("🔨 Creating pull request...")
        try:
            number = self.gh.create_pr(
                title=f"OpenCode iteration {state.iteration}",
                body=build_pr_body(cfg.prompt, state.share_link),
                base=cfg.base_branch,
                head=branch,
            )
        except GitHubError as e:
            logger.warning("%s", e)
            warn("Failed to create PR")
            return None

        self.pr_handle.save(number)
        print_output(f"💬 PR created: #{number}")
        return number

    def _report_poll(self, attempt: int, summary: CheckSummary) -> None:
        print_output(
            f"   📊 Poll {attempt}/{self.config.max_polls}: "
            f"{summary.pending} pending, {summary.failed} failed"
        )

    def wait_for_checks(self) -> Optional[CheckOutcome]:
        number = self.pr_handle.load()
        if number is None:
            return None

        print_output("🔍 Checking PR status...")
        outcome = wait_for_checks(
            lambda: self.gh.pr_checks(number),
            poll_interval=self.config.poll_interval_seconds,
            max_polls=self.config.max_polls,
            sleep=self._sleep,
            on_poll=self._report_poll,
        )
        if outcome is CheckOutcome.SUCCESS:
            print_output("✅ All PR checks passed")
        elif outcome is CheckOutcome.FAILED:
            print_output("❌ PR checks failed")
        else:
            print_output("⏰ Timeout waiting for PR checks")
        return outcome

    def merge(self) -> bool:
        number = self.pr_handle.load()
        if number is None:
            return False

        print_output(f"🔀 Merging PR #{number}...")
        merged = self.gh.merge_pr(number, self.config.merge_strategy)
        self.pr_handle.clear()
        if merged.failed:
            warn(f"Merge failed: {merged.stderr.strip() or merged.stdout.strip()}")
            return False
        print_output("   ✅ PR merged")
        return True

    def cleanup_branch(self, branch: str) -> None:
        print_output(f"🗑️  Cleaning up branch: {branch}")
        if self.config.dry_run:
            print_output(f"{DRY} Would switch to {self._default_branches()[0]} and delete {branch}")
            return
        if self.git.checkout_default_branch(self._default_branches()) is None:
            logger.warning("Could not switch back to a default branch")
        self.git.pull()
        self.git.delete_branch(branch)

    # -------------------------
    # Driver
    # -------------------------

    def run(self, state: LoopState) -> IterationResult:
        n = state.begin_iteration()
        result = IterationResult(iteration=n)
        print_output(f"🔄 ({n}) Starting iteration...")

        branching = self.uses_branches(state)
        if branching:
            result.branch = self.create_branch(state)

        self.run_agent(state, result)
        self.run_review(state)
        result.committed = self.commit(state)

        if branching:
            result.pr_number = self.open_pull_request(state, result.branch)
            if self.config.dry_run:
                print_output(f"{DRY} Would wait for PR checks")
                print_output(
                    f"{DRY} Would merge PR with {self.config.merge_strategy.gh_flag}"
                )
            elif result.pr_number is not None:
                result.check_outcome = self.wait_for_checks()
                if result.check_outcome is CheckOutcome.SUCCESS:
                    result.merged = self.merge()
            self.cleanup_branch(result.branch)
        elif self.config.disable_commits or self.config.disable_branches:
            print_output("⏭️  Skipping PR creation")

        print_output(f"✅ ({n}) Iteration complete")
        return result
