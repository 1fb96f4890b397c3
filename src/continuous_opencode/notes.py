"""Bootstrap of the notes file the agent uses to hand over between iterations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .atomic_file import atomic_write_text
from .output import print_output

logger = logging.getLogger(__name__)

NOTES_TEMPLATE = """\
# Continuous OpenCode

This file maintains context between iterations of continuous OpenCode.

## Context
This is a continuous development loop where OpenCode runs multiple iterations to complete a task.
Each iteration should:
1. Make meaningful progress on one thing
2. Leave clear notes here for the next iteration
3. Track progress and next steps

## Progress

## Next Steps
"""


def init_notes_file(cwd: Path, notes_file: str, dry_run: bool = False) -> Optional[Path]:
    """Write the notes template unless the file already exists.

    Returns the path written, or None when nothing was written. An existing
    file is never touched, whatever its contents.
    """
    path = cwd / notes_file
    if path.exists():
        logger.debug("Notes file already present: %s", path)
        return None

    if dry_run:
        print_output(f"📝 [DRY RUN] Would create {notes_file}")
        return None

    print_output(f"📝 Creating {notes_file}...")
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(path, NOTES_TEMPLATE)
    return path
