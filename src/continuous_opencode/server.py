"""Lifecycle of the background ``opencode serve`` process.

A warm server lets every iteration attach instead of cold-starting the agent,
and it is what makes share links and the stats query available. Losing it is
never fatal: the loop just falls back to cold invocations.
"""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Callable, List, Optional

from .output import print_output, warn

logger = logging.getLogger(__name__)

STOP_GRACE_SECONDS = 5.0


class AgentServerManager:
    """Start the agent server once, stop it exactly once.

    Use as a context manager so ``stop()`` runs however the loop ends::

        with AgentServerManager(argv, port=4096) as server:
            state.server_url = server.url
    """

    def __init__(
        self,
        argv: List[str],
        port: int,
        enabled: bool = True,
        dry_run: bool = False,
        warmup_seconds: float = 3.0,
        cwd: Optional[Path] = None,
        popen: Callable[..., Any] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.argv = list(argv)
        self.port = port
        self.enabled = enabled
        self.dry_run = dry_run
        self.warmup_seconds = warmup_seconds
        self.cwd = cwd
        self._popen = popen
        self._sleep = sleep
        self.process: Optional[Any] = None
        self.url = ""

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def endpoint(self) -> str:
        return f"http://localhost:{self.port}"

    def start(self) -> str:
        """Launch the server and return its URL ("" when none is running)."""
        if not self.enabled:
            return ""

        print_output("🚀 Starting OpenCode server...")
        if self.dry_run:
            print_output(f"   [DRY RUN] Would start server on {self.endpoint}")
            return ""

        try:
            self.process = self._popen(
                self.argv,
                cwd=str(self.cwd) if self.cwd is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning("Could not launch agent server: %s", e)
            warn("Server may not have started, continuing anyway")
            self.process = None
            return ""

        self._sleep(self.warmup_seconds)

        if self.process.poll() is None:
            self.url = self.endpoint
            print_output(f"   ✅ Server started (PID: {self.process.pid})")
        else:
            logger.warning(
                "Agent server exited during warm-up (code %s)", self.process.returncode
            )
            warn("Server may not have started, continuing anyway")
            self.process = None
            self.url = ""
        return self.url

    def stop(self) -> None:
        if self.process is None:
            return

        proc, self.process = self.process, None
        self.url = ""
        print_output("🛑 Stopping OpenCode server...")
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=STOP_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning("Agent server ignored SIGTERM; killing pid %s", proc.pid)
                proc.kill()
                proc.wait()
        print_output("   ✅ Server stopped")

    def __enter__(self) -> "AgentServerManager":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
