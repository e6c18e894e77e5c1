"""Numbered-line view used to address line ranges.

Example::

     1: # Hello World
     2:
    ...
    12: Last line
"""

from __future__ import annotations

import re

_LINE_NUMBER_RE = re.compile(r"^\s*\d+: ?")


def add_line_numbers(text: str) -> str:
    """Prefix each line with its 1-based index, right-aligned."""
    lines = text.split("\n")
    width = len(str(len(lines)))
    return "\n".join(f"{i:>{width}}: {line}" for i, line in enumerate(lines, start=1))


def strip_line_numbers(numbered: str) -> str:
    """Remove ``N:`` prefixes (and one following space) from every line.

    Any line that merely looks numbered loses its prefix too; only text
    produced by add_line_numbers round-trips exactly.
    """
    return "\n".join(_LINE_NUMBER_RE.sub("", line, count=1) for line in numbered.split("\n"))
