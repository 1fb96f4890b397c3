"""Pure scanners over captured agent output."""

from __future__ import annotations

import re
from typing import Optional

SHARE_LINK_RE = re.compile(r"https://opncd\.ai/s/[A-Za-z0-9]+")
PR_NUMBER_RE = re.compile(r"/pull/(\d+)|(\d+)\s*$")


def contains_completion_signal(output: str, signal: str) -> bool:
    """True when the exact completion phrase appears anywhere in ``output``."""
    if not signal:
        return False
    return signal in (output or "")


def extract_share_link(output: str) -> str:
    """Return the first opencode share URL in ``output``, or an empty string."""
    m = SHARE_LINK_RE.search(output or "")
    return m.group(0) if m else ""


def extract_pr_number(output: str) -> Optional[str]:
    """Pull the PR number out of ``gh pr create`` output (a URL ending in it)."""
    text = (output or "").strip()
    if not text:
        return None
    for line in reversed(text.splitlines()):
        m = PR_NUMBER_RE.search(line.strip())
        if m:
            return m.group(1) or m.group(2)
    return None
