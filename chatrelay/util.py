from __future__ import annotations

import os

from .constants import LINE_END


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def strip_line_end(line: str) -> str:
    """Drop the trailing line terminator, keeping everything else verbatim."""
    if line.endswith(LINE_END):
        line = line[: -len(LINE_END)]
    if line.endswith("\r"):
        line = line[:-1]
    return line
