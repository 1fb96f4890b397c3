"""When to stop iterating.

Two checkpoints share this module. Before each iteration :func:`stop_reason`
looks at the resource ceilings (runs, cost, wall-clock) plus the idle
counter; after each iteration :func:`post_iteration_stop_reason` looks at the
signals the agent itself produced. Ceilings that were never configured are
skipped, and thresholds of zero or less switch their check off.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from .config import RunConfig
from .state import LoopState


class StopReason(str, Enum):
    MAX_RUNS = "max_runs"
    MAX_COST = "max_cost"
    MAX_DURATION = "max_duration"
    NO_CHANGES = "no_changes"
    COMPLETED = "completed"

    def describe(self, config: RunConfig) -> str:
        if self is StopReason.MAX_RUNS:
            return f"🛑 Reached max iterations ({config.max_runs})"
        if self is StopReason.MAX_COST:
            return f"🛑 Reached max cost (${config.max_cost})"
        if self is StopReason.MAX_DURATION:
            return "🛑 Reached max duration"
        if self is StopReason.NO_CHANGES:
            return (
                f"🛑 No changes threshold reached "
                f"({config.no_changes_threshold} consecutive iterations)"
            )
        return "🎉 Project completion threshold reached!"


def _no_changes_exhausted(config: RunConfig, state: LoopState) -> bool:
    return (
        config.no_changes_threshold > 0
        and state.no_changes_count >= config.no_changes_threshold
    )


def stop_reason(
    config: RunConfig, state: LoopState, now: Optional[float] = None
) -> Optional[StopReason]:
    """First ceiling that has been hit, or None to keep going."""
    if config.max_runs and state.iteration >= config.max_runs:
        return StopReason.MAX_RUNS

    max_cost_cents = config.max_cost_cents
    if max_cost_cents is not None and state.total_cost_cents >= max_cost_cents:
        return StopReason.MAX_COST

    if config.max_duration is not None:
        now = time.monotonic() if now is None else now
        if state.elapsed(now) >= config.max_duration:
            return StopReason.MAX_DURATION

    if _no_changes_exhausted(config, state):
        return StopReason.NO_CHANGES

    return None


def should_continue(
    config: RunConfig, state: LoopState, now: Optional[float] = None
) -> bool:
    return stop_reason(config, state, now) is None


def post_iteration_stop_reason(config: RunConfig, state: LoopState) -> Optional[StopReason]:
    if (
        config.completion_threshold > 0
        and state.completion_signal_count >= config.completion_threshold
    ):
        return StopReason.COMPLETED
    if _no_changes_exhausted(config, state):
        return StopReason.NO_CHANGES
    return None
