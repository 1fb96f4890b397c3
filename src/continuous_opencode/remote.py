"""Work out which hosted repository (if any) the working copy pushes to."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .git import Git
from .output import print_output
from .subprocess_helper import Runner, run_subprocess

logger = logging.getLogger(__name__)

# Hosted remotes only: scheme://[user@]host[:port]/, user@host: or host.tld:
# followed by [groups/]owner/name[.git]. Local paths and file:// never match.
REMOTE_RE = re.compile(
    r"^(?:"
    r"[a-z][a-z0-9+.-]*://(?:[^/@]+@)?[^/:@]+(?::\d+)?/"
    r"|[^/@\s]+@[^/:@\s]+:"
    r"|[^/@:\s]+\.[^/@:\s]+:"
    r")(?:[^/]+/)*(?P<owner>[^/:]+)/(?P<name>[^/]+?)(?:\.git)?/?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RemoteInfo:
    owner: str
    repo: str
    has_remote: bool

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}" if self.owner and self.repo else ""


def parse_remote_url(url: str) -> Optional[Tuple[str, str]]:
    """Split a remote URL into ``(owner, name)``.

    >>> parse_remote_url("git@github.com:acme/widgets.git")
    ('acme', 'widgets')
    >>> parse_remote_url("https://gitlab.example.com/acme/widgets")
    ('acme', 'widgets')
    """
    m = REMOTE_RE.match((url or "").strip())
    if not m:
        return None
    return m.group("owner"), m.group("name")


def detect_remote(
    cwd: Path,
    owner: str = "",
    repo: str = "",
    run: Runner = run_subprocess,
) -> RemoteInfo:
    """Resolve owner and name from ``origin``, filling only the missing parts.

    Values given on the command line always win. Without a matching
    ``origin`` URL the run is local-only: no branches, pushes or PRs.
    """
    url = Git(cwd, run=run).remote_url()
    parsed = parse_remote_url(url) if url else None
    if parsed is not None:
        owner = owner or parsed[0]
        repo = repo or parsed[1]
    elif url:
        logger.debug("origin URL not recognised: %s", url)

    info = RemoteInfo(owner=owner, repo=repo, has_remote=parsed is not None)
    if info.slug:
        print_output(f"📦 Repository: {info.slug}")
    else:
        print_output("📦 Local repository")
    return info
