"""Invocation of the opencode CLI.

The agent is an opaque command with four modes we rely on:

- ``opencode run -- <prompt>``: cold, self-contained run
- ``opencode run --attach <url> --share -- <prompt>``: reuse a warm server
- ``opencode serve --port <port>``: the background server itself
- ``opencode stats --project <dir> --format json``: cumulative spend

Usage:
    >>> agent = OpenCodeAgent(extra_args=["--model", "anthropic/claude-sonnet-4"])
    >>> run = agent.invoke("add unit tests", server_url="http://localhost:4096")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .subprocess_helper import NOT_FOUND_EXIT, Runner, run_subprocess

logger = logging.getLogger(__name__)

AGENT_BIN = "opencode"


@dataclass
class AgentRun:
    """Captured result of one agent invocation."""

    output: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def build_iteration_prompt(prompt: str, notes_file: str, completion_signal: str) -> str:
    """Wrap the user's task with the loop's standing instructions."""
    return (
        "This is part of a continuous development loop with OpenCode.\n"
        "You don't need to complete the entire goal in one iteration - "
        "just make meaningful progress on one thing.\n"
        f"Leave clear notes in {notes_file} for the next iteration.\n"
        "\n"
        "When the entire task is COMPLETE and nothing more needs to be done, "
        "output this exact phrase:\n"
        f"{completion_signal}\n"
        "\n"
        f"{prompt}"
    )


class OpenCodeAgent:
    """Builds and runs opencode command lines.

    ``extra_args`` are the unrecognised command-line arguments, forwarded
    verbatim to every ``opencode run``.
    """

    def __init__(
        self,
        extra_args: Sequence[str] = (),
        binary: str = AGENT_BIN,
        run: Runner = run_subprocess,
        cwd: Optional[Path] = None,
    ) -> None:
        self.extra_args = [str(a) for a in extra_args]
        self.binary = binary
        self._run = run
        self.cwd = cwd

    def run_argv(self, prompt: str, server_url: str = "", share: bool = False) -> List[str]:
        argv = [self.binary, "run"]
        if server_url:
            argv.extend(["--attach", server_url])
        argv.extend(self.extra_args)
        if share and server_url:
            argv.append("--share")
        argv.extend(["--", prompt])
        return argv

    def serve_argv(self, port: int) -> List[str]:
        return [self.binary, "serve", "--port", str(port)]

    def stats_argv(self, project_dir: Path) -> List[str]:
        return [self.binary, "stats", "--project", str(project_dir), "--format", "json"]

    def invoke(self, prompt: str, server_url: str = "", share: bool = False) -> AgentRun:
        """Run the agent to completion and capture stdout+stderr.

        A missing binary or a timeout comes back as a failed run rather than
        an exception; the loop treats agent failures as recoverable.
        """
        argv = self.run_argv(prompt, server_url=server_url, share=share)
        logger.debug("Invoking agent (%s)", "attached" if server_url else "cold")
        try:
            result = self._run(argv, cwd=self.cwd)
        except RuntimeError as e:
            logger.warning("Agent invocation failed: %s", e)
            return AgentRun(output=str(e), returncode=NOT_FOUND_EXIT)
        return AgentRun(output=result.combined_output, returncode=result.returncode)

    def query_stats(self, project_dir: Path) -> str:
        """Raw JSON text from ``opencode stats``; empty on any failure."""
        try:
            result = self._run(self.stats_argv(project_dir), cwd=self.cwd)
        except RuntimeError as e:
            logger.debug("Stats query failed: %s", e)
            return ""
        if result.failed:
            logger.debug("Stats query exited %d: %s", result.returncode, result.stderr.strip())
            return ""
        return result.stdout
