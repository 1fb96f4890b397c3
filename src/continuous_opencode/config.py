from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

try:
    import tomllib  # py>=3.11
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore

from .cost import to_cents
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV = "CONTINUOUS_OPENCODE_CONFIG"
CONFIG_FILENAMES = (".continuous-opencode.toml", "continuous-opencode.toml")

DEFAULT_COMPLETION_SIGNAL = "CONTINUOUS_OPENCODE_PROJECT_COMPLETE"
DEFAULT_BRANCH_PREFIX = "continuous-opencode/"
DEFAULT_WORKTREE_BASE_DIR = "../continuous-opencode-worktrees"
DEFAULT_NOTES_FILE = "AGENTS.md"
PR_STATE_FILE = ".continuous-opencode-pr"


class MergeStrategy(str, Enum):
    SQUASH = "squash"
    MERGE = "merge"
    REBASE = "rebase"

    @property
    def gh_flag(self) -> str:
        return f"--{self.value}"

    @classmethod
    def parse(cls, value: str) -> "MergeStrategy":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ConfigError(
                f"Invalid merge strategy: {value!r}. Must be one of: {choices}."
            ) from None


# -------------------------
# Dataclasses
# -------------------------


@dataclass(frozen=True)
class FileDefaults:
    """Defaults that a project can pin in ``.continuous-opencode.toml``.

    Every field has a command-line flag that takes precedence.
    """

    completion_signal: str = DEFAULT_COMPLETION_SIGNAL
    completion_threshold: int = 3
    no_changes_threshold: int = 3
    sleep_seconds_between_iters: float = 1.0
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    base_branch: str = "main"
    merge_strategy: MergeStrategy = MergeStrategy.SQUASH
    notes_file: str = DEFAULT_NOTES_FILE
    server_port: int = 4096
    server_warmup_seconds: float = 3.0
    poll_interval_seconds: float = 10.0
    max_polls: int = 180
    worktree_base_dir: str = DEFAULT_WORKTREE_BASE_DIR


@dataclass(frozen=True)
class RunConfig:
    """Everything a run needs, fixed once the command line has been parsed."""

    prompt: str
    max_runs: Optional[int] = None  # None = not given, 0 = unlimited
    max_cost: Optional[Decimal] = None
    max_duration: Optional[int] = None  # seconds
    owner: str = ""
    repo: str = ""
    merge_strategy: MergeStrategy = MergeStrategy.SQUASH
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    base_branch: str = "main"
    notes_file: str = DEFAULT_NOTES_FILE
    disable_commits: bool = False
    disable_branches: bool = False
    worktree_name: str = ""
    worktree_base_dir: str = DEFAULT_WORKTREE_BASE_DIR
    cleanup_worktree: bool = False
    dry_run: bool = False
    completion_signal: str = DEFAULT_COMPLETION_SIGNAL
    completion_threshold: int = 3
    no_changes_threshold: int = 3
    review_prompt: str = ""
    agent_args: Tuple[str, ...] = field(default_factory=tuple)
    server_port: int = 4096
    server_warmup_seconds: float = 3.0
    poll_interval_seconds: float = 10.0
    max_polls: int = 180
    sleep_seconds_between_iters: float = 1.0

    @property
    def has_stopping_limit(self) -> bool:
        return (
            self.max_runs is not None
            or self.max_cost is not None
            or self.max_duration is not None
        )

    @property
    def max_cost_cents(self) -> Optional[int]:
        if self.max_cost is None:
            return None
        return to_cents(self.max_cost)

    def validate(self) -> None:
        """Raise ConfigError unless a prompt and at least one limit are set."""
        if not self.prompt.strip():
            raise ConfigError("--prompt is required")
        if not self.has_stopping_limit:
            raise ConfigError(
                "Must specify one of: --max-runs, --max-cost, or --max-duration"
            )
        if self.max_runs is not None and self.max_runs < 0:
            raise ConfigError(f"--max-runs must be >= 0, got {self.max_runs}")


# -------------------------
# Parsing helpers
# -------------------------


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_money(value: str) -> Decimal:
    """Parse a ``--max-cost`` value such as ``10`` or ``2.50`` (a leading ``$`` is allowed)."""
    text = str(value).strip().lstrip("$")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ConfigError(f"Invalid --max-cost value: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ConfigError(f"Invalid --max-cost value: {value!r}")
    return amount


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Merge b into a (recursively for dicts), return new dict."""

    out: Dict[str, Any] = dict(a)
    for k, v in b.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _config_paths(project_root: Path) -> List[Path]:
    paths = [project_root / name for name in CONFIG_FILENAMES]
    env = os.environ.get(CONFIG_ENV)
    if env:
        p = Path(env)
        if not p.is_absolute():
            p = (project_root / p).resolve()
        paths.append(p)
    return [p for p in paths if p.exists()]


# -------------------------
# Public API
# -------------------------


def load_defaults(project_root: Path) -> FileDefaults:
    """Load project defaults.

    Reads ``.continuous-opencode.toml``, then ``continuous-opencode.toml``,
    then ``$CONTINUOUS_OPENCODE_CONFIG``; later files override earlier ones.
    Missing files are fine; the result always carries usable values.
    """

    data: Dict[str, Any] = {}
    for path in _config_paths(project_root):
        logger.debug("Reading config %s", path)
        data = _deep_merge(data, _load_toml(path))

    loop_raw = data.get("loop", {}) or {}
    git_raw = data.get("git", {}) or {}
    files_raw = data.get("files", {}) or {}
    server_raw = data.get("server", {}) or {}
    checks_raw = data.get("checks", {}) or {}
    worktree_raw = data.get("worktree", {}) or {}

    d = FileDefaults()
    return FileDefaults(
        completion_signal=str(loop_raw.get("completion_signal", d.completion_signal)),
        completion_threshold=_coerce_int(
            loop_raw.get("completion_threshold"), d.completion_threshold
        ),
        no_changes_threshold=_coerce_int(
            loop_raw.get("no_changes_threshold"), d.no_changes_threshold
        ),
        sleep_seconds_between_iters=_coerce_float(
            loop_raw.get("sleep_seconds_between_iters"), d.sleep_seconds_between_iters
        ),
        branch_prefix=str(git_raw.get("branch_prefix", d.branch_prefix)),
        base_branch=str(git_raw.get("base_branch", d.base_branch)),
        merge_strategy=MergeStrategy.parse(
            git_raw.get("merge_strategy", d.merge_strategy.value)
        ),
        notes_file=str(files_raw.get("notes", d.notes_file)),
        server_port=_coerce_int(server_raw.get("port"), d.server_port),
        server_warmup_seconds=_coerce_float(
            server_raw.get("warmup_seconds"), d.server_warmup_seconds
        ),
        poll_interval_seconds=_coerce_float(
            checks_raw.get("poll_interval_seconds"), d.poll_interval_seconds
        ),
        max_polls=_coerce_int(checks_raw.get("max_polls"), d.max_polls),
        worktree_base_dir=str(worktree_raw.get("base_dir", d.worktree_base_dir)),
    )
