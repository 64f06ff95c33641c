"""Progress lines printed while projects are processed."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

_CLEAR_LINE = "\x1b[2K\r"


@dataclass
class ProjectProgress:
    """Counters for one project's conversations."""

    name: str
    total: int
    handled: int = 0
    skipped: int = 0
    interesting: int = 0
    learnings: int = 0


def clean_project_name(name: str) -> str:
    """Shorten a project directory name that encodes a path under the home directory."""
    home = re.sub(r"[^A-Za-z0-9]", "-", str(Path.home()))
    if name == home:
        return "~"
    for prefix in (f"{home}-ws-", f"{home}-"):
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


class Display:
    """Writes a finished line per project and a rewritable line for the active one."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.has_active_line = False

    @property
    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def print_completed(self, progress: ProjectProgress) -> None:
        name = clean_project_name(progress.name)
        out = self._out
        if self.has_active_line:
            out.write(_CLEAR_LINE)
        out.write(
            f"\u2713 {name:<30} {progress.total:>3} conv  {progress.skipped:>3} skipped  "
            f"{progress.interesting:>3} interesting  {progress.learnings:>3} learnings\n"
        )
        self.has_active_line = False

    def print_active(self, progress: ProjectProgress) -> None:
        name = clean_project_name(progress.name)
        out = self._out
        out.write(_CLEAR_LINE)
        out.write(
            f"  {name:<30} {progress.handled}/{progress.total} | {progress.skipped} skipped | "
            f"{progress.interesting} interesting | {progress.learnings} learnings"
        )
        out.flush()
        self.has_active_line = True