from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__
from .config import FileDefaults, MergeStrategy, RunConfig, load_defaults, parse_money
from .controller import LoopController
from .duration import parse_duration
from .errors import ConfigError, ContinuousOpencodeError
from .logging_config import setup_logging
from .output import OutputConfig, print_output, set_output_config
from .update import check_for_updates
from .worktree import WorktreeError, WorktreeManager

logger = logging.getLogger(__name__)

EPILOG = """\
commands:
  update                       Check whether a newer release is available

Additional flags are passed directly to opencode.

examples:
  cop -p "add unit tests" -m 5
  cop -p "add docs" --max-cost 10.00
  cop -p "refactor" --max-duration 2h
  cop -p "fix lint" -m 3 --model anthropic/claude-sonnet-4
"""


class _CopArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(1, f"❌ Error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    p = _CopArgumentParser(
        prog="cop",
        description="continuous-opencode: run the opencode agent in a loop, one PR per iteration",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    p.add_argument("--version", action="version", version=f"continuous-opencode {__version__}")

    run = p.add_argument_group("task and limits")
    run.add_argument("-p", "--prompt", default=None, help="Task for opencode to work on")
    run.add_argument(
        "-m", "--max-runs", type=int, default=None,
        help="Maximum number of iterations (0 = unlimited)",
    )
    run.add_argument("--max-cost", default=None, help="Maximum spend in USD, e.g. 10.00")
    run.add_argument("--max-duration", default=None, help="Maximum wall-clock time, e.g. 2h, 30m, 1h30m")

    gh = p.add_argument_group("git and pull requests")
    gh.add_argument("--owner", default="", help="Repository owner (detected from origin)")
    gh.add_argument("--repo", default="", help="Repository name (detected from origin)")
    gh.add_argument(
        "--merge-strategy",
        choices=[m.value for m in MergeStrategy],
        default=None,
        help="How PRs are merged (default: squash)",
    )
    gh.add_argument("--git-branch-prefix", default=None, help="Branch prefix (default: continuous-opencode/)")
    gh.add_argument("--base-branch", default=None, help="Branch PRs target (default: main)")
    gh.add_argument("--disable-commits", action="store_true", help="Never commit, push or open PRs")
    gh.add_argument("--disable-branches", action="store_true", help="Commit on the current branch, no PRs")

    wt = p.add_argument_group("worktrees")
    wt.add_argument("--worktree", default="", help="Run inside the named git worktree")
    wt.add_argument("--worktree-base-dir", default=None, help="Where worktrees live (default: ../continuous-opencode-worktrees)")
    wt.add_argument("--cleanup-worktree", action="store_true", help="Remove the worktree when the run ends")
    wt.add_argument("--list-worktrees", action="store_true", help="List active git worktrees and exit")

    loop = p.add_argument_group("loop behaviour")
    loop.add_argument("--notes-file", default=None, help="Shared notes file (default: AGENTS.md)")
    loop.add_argument("--dry-run", action="store_true", help="Print every step without changing anything")
    loop.add_argument("--completion-signal", default=None, help="Phrase that signals project completion")
    loop.add_argument(
        "--completion-threshold", type=int, default=None,
        help="Completion signals required to stop (default: 3, 0 disables)",
    )
    loop.add_argument(
        "--no-changes-threshold", type=int, default=None,
        help="Consecutive idle iterations that stop the run (default: 3, 0 disables)",
    )
    loop.add_argument("-r", "--review-prompt", default="", help="Run a reviewer pass after each iteration")

    out = p.add_argument_group("output")
    out.add_argument("--verbose", action="store_true", help="Show command details and debug logs")
    out.add_argument("--quiet", action="store_true", help="Only show warnings, errors and the summary")
    out.add_argument("--log-file", type=Path, default=None, help="Also write debug logs to this file")
    return p


def _pick(value, default):
    return default if value is None else value


def build_config(
    args: argparse.Namespace,
    agent_args: Sequence[str],
    defaults: Optional[FileDefaults] = None,
) -> RunConfig:
    """Merge parsed flags over file defaults.

    Raises:
        ConfigError: If a limit value cannot be parsed
    """
    d = defaults or FileDefaults()

    max_cost = parse_money(args.max_cost) if args.max_cost is not None else None
    max_duration: Optional[int] = None
    if args.max_duration is not None:
        max_duration = parse_duration(args.max_duration)
        if max_duration <= 0:
            raise ConfigError(f"Invalid --max-duration value: {args.max_duration!r}")

    merge_strategy = (
        MergeStrategy.parse(args.merge_strategy) if args.merge_strategy else d.merge_strategy
    )

    return RunConfig(
        prompt=args.prompt or "",
        max_runs=args.max_runs,
        max_cost=max_cost,
        max_duration=max_duration,
        owner=args.owner,
        repo=args.repo,
        merge_strategy=merge_strategy,
        branch_prefix=_pick(args.git_branch_prefix, d.branch_prefix),
        base_branch=_pick(args.base_branch, d.base_branch),
        notes_file=_pick(args.notes_file, d.notes_file),
        disable_commits=args.disable_commits,
        disable_branches=args.disable_branches,
        worktree_name=args.worktree,
        worktree_base_dir=_pick(args.worktree_base_dir, d.worktree_base_dir),
        cleanup_worktree=args.cleanup_worktree,
        dry_run=args.dry_run,
        completion_signal=_pick(args.completion_signal, d.completion_signal),
        completion_threshold=_pick(args.completion_threshold, d.completion_threshold),
        no_changes_threshold=_pick(args.no_changes_threshold, d.no_changes_threshold),
        review_prompt=args.review_prompt,
        agent_args=tuple(agent_args),
        server_port=d.server_port,
        server_warmup_seconds=d.server_warmup_seconds,
        poll_interval_seconds=d.poll_interval_seconds,
        max_polls=d.max_polls,
        sleep_seconds_between_iters=d.sleep_seconds_between_iters,
    )


def _configure_output(args: argparse.Namespace) -> None:
    if args.verbose:
        set_output_config(OutputConfig(verbosity="verbose"))
    elif args.quiet:
        set_output_config(OutputConfig(verbosity="quiet"))
    setup_logging(verbose=args.verbose, log_file=args.log_file, quiet=args.quiet)


def cmd_list_worktrees(root: Path) -> int:
    try:
        listing = WorktreeManager(root).list_worktrees()
    except WorktreeError as e:
        print_output(f"❌ Error: {e}", level="error")
        return 1
    print_output(listing.rstrip("\n"), level="quiet")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(argv) if argv is not None else sys.argv[1:]

    if argv[:1] == ["update"]:
        setup_logging()
        return check_for_updates()

    parser = build_parser()
    try:
        args, agent_args = parser.parse_known_args(argv)
    except SystemExit as e:
        # --help / --version exit 0; bad flag values exit 1
        return e.code if isinstance(e.code, int) else 0

    _configure_output(args)
    root = Path.cwd()
    logger.debug("continuous-opencode v%s starting in %s", __version__, root)

    if args.list_worktrees:
        return cmd_list_worktrees(root)

    try:
        config = build_config(args, agent_args, load_defaults(root))
        return LoopController(config, cwd=root).run()
    except ConfigError as e:
        print_output(f"❌ Error: {e}", level="error")
        print_output(parser.format_usage(), level="error", end="")
        return 1
    except ContinuousOpencodeError as e:
        print_output(f"❌ Error: {e}", level="error")
        return 1
    except KeyboardInterrupt:
        print_output("\n⚠️  Interrupted", level="error")
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
