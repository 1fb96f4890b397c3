"""Pull-request host operations through the gh CLI.

gh is preferred over raw API calls because it reuses the user's keychain
login; nothing here ever sees a token. Three operations are needed:

1. ``gh pr create``: open the iteration's PR and learn its number
2. ``gh pr checks``: poll CI until it settles or the poll limit runs out
3. ``gh pr merge``: merge with the configured strategy and delete the branch
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import MergeStrategy
from .parsing import extract_pr_number
from .subprocess_helper import Runner, SubprocessResult, run_quietly, run_subprocess

logger = logging.getLogger(__name__)

CHECK_FIELDS = "name,state,bucket"
# What gh prints on stderr for a PR whose head commit has no checks at all.
NO_CHECKS_MARKER = "no checks reported"

PENDING_STATES = frozenset(
    {"QUEUED", "IN_PROGRESS", "PENDING", "WAITING", "REQUESTED", "EXPECTED"}
)
FAILED_STATES = frozenset(
    {"FAILURE", "ERROR", "TIMED_OUT", "CANCELLED", "STARTUP_FAILURE"}
)


class GitHubError(Exception):
    """A gh operation failed."""

    pass


class CheckOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class CheckSummary:
    total: int
    pending: int
    failed: int

    @property
    def settled(self) -> bool:
        return self.pending == 0


def _check_is_pending(check: Dict[str, Any]) -> bool:
    state = str(check.get("state") or check.get("status") or "").upper()
    bucket = str(check.get("bucket") or "").lower()
    return state in PENDING_STATES or bucket == "pending"


def _check_is_failed(check: Dict[str, Any]) -> bool:
    # gh reports the verdict in state+bucket; the Checks API in conclusion.
    verdicts = {
        str(check.get("conclusion") or "").upper(),
        str(check.get("state") or "").upper(),
    }
    bucket = str(check.get("bucket") or "").lower()
    return bool(verdicts & FAILED_STATES) or bucket in ("fail", "cancel")


def summarize_checks(checks: List[Dict[str, Any]]) -> CheckSummary:
    """Count pending and failed checks in one status feed."""
    pending = 0
    failed = 0
    for check in checks:
        if _check_is_pending(check):
            pending += 1
        elif _check_is_failed(check):
            failed += 1
    return CheckSummary(total=len(checks), pending=pending, failed=failed)


def parse_checks_payload(text: str) -> Optional[List[Dict[str, Any]]]:
    """Decode ``gh pr checks --json`` output.

    An empty list means the PR has no checks. None means the output could not
    be read at all.
    """
    if not text or not text.strip():
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Unparseable checks payload: %s", e)
        return None
    if not isinstance(data, list):
        return None
    if not data:
        return []
    checks = [c for c in data if isinstance(c, dict)]
    return checks or None


def wait_for_checks(
    fetch: Callable[[], Optional[List[Dict[str, Any]]]],
    poll_interval: float,
    max_polls: int,
    sleep: Callable[[float], None] = time.sleep,
    on_poll: Optional[Callable[[int, CheckSummary], None]] = None,
) -> CheckOutcome:
    """Poll ``fetch`` until every check has concluded.

    A feed with no checks settles as success, since nothing is pending or
    failed. An unreadable feed (None) settles nothing and polling continues
    until ``max_polls`` is spent.
    """
    for attempt in range(1, max_polls + 1):
        checks = fetch()
        if checks is not None:
            summary = summarize_checks(checks)
            if on_poll is not None:
                on_poll(attempt, summary)
            if summary.settled:
                return CheckOutcome.FAILED if summary.failed else CheckOutcome.SUCCESS
        if attempt < max_polls:
            sleep(poll_interval)
    return CheckOutcome.TIMEOUT


class GhCli:
    """PR operations against the repository in ``cwd``."""

    def __init__(
        self,
        cwd: Path,
        owner: str = "",
        repo: str = "",
        run: Runner = run_subprocess,
    ) -> None:
        self.cwd = cwd
        self.owner = owner
        self.repo = repo
        self._run = run

    def _repo_args(self) -> List[str]:
        if self.owner and self.repo:
            return ["--repo", f"{self.owner}/{self.repo}"]
        return []

    def _gh(self, *args: str) -> SubprocessResult:
        return run_quietly(self._run, ["gh", *args, *self._repo_args()], cwd=self.cwd)

    def create_pr(self, title: str, body: str, base: str, head: str) -> str:
        """Open a PR and return its number.

        Raises:
            GitHubError: If gh fails or prints nothing that ends in a PR number
        """
        result = self._gh(
            "pr", "create",
            "--title", title,
            "--body", body,
            "--base", base,
            "--head", head,
        )
        if result.failed:
            error_msg = result.stderr.strip() or result.stdout.strip() or "Unknown error"
            raise GitHubError(f"gh pr create failed: {error_msg}")
        number = extract_pr_number(result.stdout)
        if number is None:
            raise GitHubError(f"gh pr create returned no PR URL: {result.stdout.strip()!r}")
        return number

    def pr_checks(self, number: str) -> Optional[List[Dict[str, Any]]]:
        # Non-zero exits are normal here (8 = still pending), so read stdout regardless.
        result = self._gh("pr", "checks", number, "--json", CHECK_FIELDS)
        checks = parse_checks_payload(result.stdout)
        if checks is None and NO_CHECKS_MARKER in result.stderr.lower():
            return []
        if checks is None and result.failed:
            logger.debug("gh pr checks %s: %s", number, result.stderr.strip())
        return checks

    def merge_pr(self, number: str, strategy: MergeStrategy) -> SubprocessResult:
        return self._gh("pr", "merge", number, strategy.gh_flag, "--delete-branch")
