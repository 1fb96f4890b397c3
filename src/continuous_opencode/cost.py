"""Spend tracking in integer cents.

The agent keeps its own per-project ledger; after every invocation we ask it
for the cumulative figure and take that as the truth. Nothing here sums
per-iteration amounts, so float drift cannot creep in.
"""

from __future__ import annotations

import json
import logging
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .agents import OpenCodeAgent
    from .config import RunConfig
    from .state import LoopState

logger = logging.getLogger(__name__)

COST_FIELD = "totalCostUsd"


def to_cents(amount: Union[Decimal, float, int, str]) -> int:
    """Convert a dollar amount to whole cents, truncating fractions of a cent.

    >>> to_cents("1.239")
    123
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation:
        return 0
    if not value.is_finite() or value <= 0:
        return 0
    return int((value * 100).to_integral_value(rounding=ROUND_DOWN))


def parse_cost_cents(text: str) -> int:
    """Read ``totalCostUsd`` from a stats JSON payload; anything unreadable is 0."""
    if not text or not text.strip():
        return 0
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.debug("Unparseable stats payload: %s", e)
        return 0
    if not isinstance(data, dict):
        return 0
    raw = data.get(COST_FIELD)
    if raw is None or isinstance(raw, bool):
        return 0
    return to_cents(raw)


def format_cents(cents: int) -> str:
    """``1234`` -> ``$12.340`` (three decimals, like the summary line)."""
    return f"${Decimal(cents) / 100:.3f}"


class CostTracker:
    """Refreshes ``LoopState.total_cost_cents`` from the agent's stats query."""

    def __init__(self, config: "RunConfig", agent: "OpenCodeAgent", cwd: Path) -> None:
        self.config = config
        self.agent = agent
        self.cwd = cwd

    def is_active(self, state: "LoopState") -> bool:
        return bool(state.server_url) and not self.config.disable_commits and not self.config.dry_run

    def update(self, state: "LoopState") -> Optional[int]:
        """Query the agent and record the latest cumulative spend.

        Returns the cents read, or None when tracking is inactive.
        """
        if not self.is_active(state):
            return None
        cents = parse_cost_cents(self.agent.query_stats(self.cwd))
        state.record_cost(cents)
        logger.debug("Cost reading: %d cents (tracked %d)", cents, state.total_cost_cents)
        return cents
