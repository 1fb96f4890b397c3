"""Atomic writes for the small state files kept in the working directory.

The PR record must never be observed half-written: a crash between ``gh pr
create`` and the merge should leave either the old state or the complete PR
number on disk. Writing to a sibling temp file and renaming gives that on
POSIX filesystems.
"""

from __future__ import annotations

from pathlib import Path


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Write content to file atomically using temp file + rename.

    Raises:
        OSError: If write or rename fails
    """
    temp_path = path.with_name(path.name + ".tmp")
    temp_path.write_text(content, encoding=encoding)
    temp_path.replace(path)
