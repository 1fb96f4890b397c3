"""Terminal spinner shown while the agent call blocks."""

from __future__ import annotations

import sys
import threading
import time
from typing import Any, Optional

from .duration import format_duration
from .output import get_output_config, print_output

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
FRAME_SECONDS = 0.1
CLEAR_LINE = "\r\033[K"


class Spinner:
    """Animate a status line on a daemon thread.

    Purely cosmetic: when stdout is not a terminal, or output is quiet, no
    thread is started and only the final line is printed.
    """

    def __init__(self, label: str, stream: Any = None) -> None:
        self.label = label
        self.stream = stream if stream is not None else sys.stdout
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = 0.0

    @property
    def animated(self) -> bool:
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty()) and get_output_config().verbosity != "quiet"

    def _spin(self) -> None:
        frame = 0
        while not self._stop.wait(FRAME_SECONDS):
            char = SPINNER_FRAMES[frame % len(SPINNER_FRAMES)]
            elapsed = format_duration(int(time.monotonic() - self._started_at))
            self.stream.write(f"\r   {char} {self.label} {elapsed}")
            self.stream.flush()
            frame += 1

    def start(self) -> None:
        self._started_at = time.monotonic()
        if not self.animated:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._spin, daemon=True)
        self._thread.start()

    def stop(self, final: str) -> None:
        if self._thread is not None:
            self._stop.set()
            self._thread.join(timeout=1.0)
            self._thread = None
            self.stream.write(CLEAR_LINE)
            self.stream.flush()
        print_output(final, file=self.stream)

    def __enter__(self) -> "Spinner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop("   ✅ OpenCode finished" if exc_type is None else "   ❌ OpenCode interrupted")
