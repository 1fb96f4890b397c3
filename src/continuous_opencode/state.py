"""Run state shared between the controller, the stopping policy and the executor."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .atomic_file import atomic_write_text
from .config import PR_STATE_FILE

logger = logging.getLogger(__name__)


@dataclass
class LoopState:
    """Mutable counters for one controller run.

    Owned by the controller and handed by reference to the policy and the
    executor. Mutate through the ``record_*`` methods so the counters keep
    their invariants: the iteration and cost never go down, and the
    completion counter is cumulative for the whole run.
    """

    iteration: int = 0
    total_cost_cents: int = 0
    started_at: float = field(default_factory=time.monotonic)
    completion_signal_count: int = 0
    no_changes_count: int = 0
    has_remote: bool = False
    server_url: str = ""
    share_link: str = ""

    def begin_iteration(self) -> int:
        self.iteration += 1
        self.share_link = ""
        return self.iteration

    def elapsed(self, now: Optional[float] = None) -> float:
        return (time.monotonic() if now is None else now) - self.started_at

    def record_cost(self, cents: int) -> None:
        """Keep the highest cumulative reading seen so far.

        Not a plain replacement: a reading below the tracked total (a failed
        query reads as 0) is ignored, so the total never goes down.
        """
        if cents > self.total_cost_cents:
            self.total_cost_cents = cents

    def record_completion_signal(self) -> int:
        self.completion_signal_count += 1
        return self.completion_signal_count

    def record_no_change(self) -> int:
        self.no_changes_count += 1
        return self.no_changes_count

    def record_change(self) -> None:
        self.no_changes_count = 0


class PullRequestHandle:
    """The open PR number, persisted as one line in the working directory.

    The file lives from ``gh pr create`` until the merge, so an interrupted
    run leaves behind which PR it was waiting on.
    """

    def __init__(self, cwd: Path, filename: str = PR_STATE_FILE) -> None:
        self.path = cwd / filename

    def save(self, number: str) -> None:
        atomic_write_text(self.path, f"{number}\n")

    def load(self) -> Optional[str]:
        try:
            value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return None
        return value or None

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
