"""Running the external collaborators: ``opencode``, ``gh`` and ``git``.

All of them go through :func:`run_subprocess` and come back as a
:class:`SubprocessResult`. A non-zero exit is data, not an exception: the
loop treats almost every tool failure as recoverable, so callers look at
``result.failed`` and print a warning. Only a binary that cannot be started
or a command that hangs past its timeout raises, as ``RuntimeError``.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

# Exit status a shell reports for a command it could not find.
NOT_FOUND_EXIT = 127


@dataclass
class SubprocessResult:
    """Captured outcome of one command.

    Attributes:
        returncode: Exit status (0 = success)
        stdout: Decoded standard output
        stderr: Decoded standard error
        cmd_str: The command line, for log messages
    """

    returncode: int
    stdout: str
    stderr: str
    cmd_str: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def failed(self) -> bool:
        return self.returncode != 0

    @property
    def combined_output(self) -> str:
        """stdout followed by stderr, the way a terminal would show both."""
        if self.stdout and self.stderr:
            sep = "" if self.stdout.endswith("\n") else "\n"
            return f"{self.stdout}{sep}{self.stderr}"
        return self.stdout or self.stderr


# Signature shared by run_subprocess and the fakes used in tests.
Runner = Callable[..., SubprocessResult]


def _as_text(raw: str | bytes | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw).decode("utf-8", errors="replace")
    return str(raw)


def run_subprocess(
    argv: List[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> SubprocessResult:
    """Run ``argv`` to completion with stdout and stderr captured.

    Raises:
        RuntimeError: The binary is not on PATH, or ``timeout`` elapsed

    Examples:
        >>> result = run_subprocess(["git", "status", "--porcelain"])
        >>> if result.failed:
        ...     print(result.stderr)
    """
    cmd_str = " ".join(argv)
    logger.debug("exec: %s (cwd=%s)", cmd_str, cwd or ".")

    try:
        cp = subprocess.run(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(
            f"Command timed out after {timeout}s: {cmd_str}\n"
            f"Partial output:\n{_as_text(e.stderr)[:500]}"
        ) from e
    except FileNotFoundError as e:
        raise RuntimeError(f"Command not found: {argv[0]}") from e

    logger.debug("exit %d: %s", cp.returncode, cmd_str)
    return SubprocessResult(
        returncode=cp.returncode,
        stdout=_as_text(cp.stdout),
        stderr=_as_text(cp.stderr),
        cmd_str=cmd_str,
    )


def run_quietly(run: Runner, argv: List[str], cwd: Optional[Path] = None) -> SubprocessResult:
    """Like ``run(argv)``, but a command that cannot start becomes a failed result."""
    try:
        return run(argv, cwd=cwd)
    except RuntimeError as e:
        logger.debug("best-effort command failed: %s", e)
        return SubprocessResult(
            returncode=NOT_FOUND_EXIT, stdout="", stderr=str(e), cmd_str=" ".join(argv)
        )


def which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)
