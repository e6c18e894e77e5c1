"""Unified diff hunks: parsing, validation and fuzzy application.

The parser accepts the diffs people and agents actually produce: ``---`` /
``+++`` headers with or without labels, ``diff --git`` preambles, CRLF line
endings, a leading BOM, ``\\ No newline at end of file`` markers, and blank
context lines whose leading space was stripped by an editor. Hunk bodies are
consumed by their header counts, so a removed line that itself starts with
``--`` is never mistaken for a file header.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Generator, List, Optional, Tuple

from notionpatch.errors import PatchConflictError

logger = logging.getLogger(__name__)

DEFAULT_FUZZ = 2

_HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
_ANY_HUNK_HEADER_RE = re.compile(
    r"^@@ -\d+(?:,\d+)? \+\d+(?:,\d+)? @@", re.MULTILINE
)


@dataclass(frozen=True, slots=True)
class Hunk:
    """One change region. ``lines`` keep their ``' '``/``-``/``+`` prefix."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: Tuple[str, ...]

    @property
    def header(self) -> str:
        return (
            f"@@ -{self.old_start},{self.old_count} "
            f"+{self.new_start},{self.new_count} @@"
        )

    @property
    def old_lines(self) -> List[str]:
        """Lines the hunk expects to find (context + removed)."""
        return [line[1:] for line in self.lines if line[0] in " -"]

    @property
    def new_lines(self) -> List[str]:
        return [line[1:] for line in self.lines if line[0] in " +"]


def _strip_bom(line: str) -> str:
    return line.lstrip("\ufeff")


class HunkParser:
    """Parse unified diff text into Hunk objects.

    Usage::

        for hunk in HunkParser(diff_text).parse():
            ...
    """

    def __init__(self, diff_text: str) -> None:
        self._lines = [line.rstrip("\r") for line in diff_text.split("\n")]
        if self._lines:
            self._lines[0] = _strip_bom(self._lines[0])

    def parse(self) -> Generator[Hunk, None, None]:
        idx = 0
        total = len(self._lines)

        while idx < total:
            m = _HUNK_HEADER_RE.match(self._lines[idx])
            if not m:
                # file headers, git preamble, prose around the diff
                idx += 1
                continue

            old_start = int(m.group(1))
            old_count = int(m.group(2)) if m.group(2) is not None else 1
            new_start = int(m.group(3))
            new_count = int(m.group(4)) if m.group(4) is not None else 1
            idx += 1

            body: List[str] = []
            old_seen = new_seen = 0
            while idx < total and (old_seen < old_count or new_seen < new_count):
                line = self._lines[idx]
                if line.startswith("\\"):
                    idx += 1
                    continue
                if _HUNK_HEADER_RE.match(line):
                    break
                if line == "":
                    line = " "
                op = line[0]
                if op == " ":
                    old_seen += 1
                    new_seen += 1
                elif op == "-":
                    old_seen += 1
                elif op == "+":
                    new_seen += 1
                else:
                    break
                body.append(line)
                idx += 1

            yield Hunk(
                old_start=old_start,
                old_count=old_count,
                new_start=new_start,
                new_count=new_count,
                lines=tuple(body),
            )


def parse_hunks(diff_text: str) -> List[Hunk]:
    return list(HunkParser(diff_text).parse())


def is_valid_unified_diff(diff_text: str) -> bool:
    """Cheap structural check: at least one well-formed hunk header."""
    return _ANY_HUNK_HEADER_RE.search(diff_text) is not None


def _mismatches(lines: List[str], pos: int, hunk: Hunk, fuzz: int) -> Optional[int]:
    """Count mismatched context lines at *pos*; None if the hunk cannot sit there.

    Removed lines must match exactly; up to *fuzz* context lines may differ.
    """
    mismatches = 0
    cursor = pos
    for line in hunk.lines:
        op, text = line[0], line[1:]
        if op == "+":
            continue
        if lines[cursor] != text:
            if op == "-":
                return None
            mismatches += 1
            if mismatches > fuzz:
                return None
        cursor += 1
    return mismatches


def _locate(
    lines: List[str], hunk: Hunk, target: int, floor: int, fuzz: int
) -> Optional[Tuple[int, int]]:
    """Search outward from *target* for a position where *hunk* fits."""
    last = len(lines) - len(hunk.old_lines)
    if last < floor:
        return None
    reach = max(target - floor, last - target)
    for distance in range(reach + 1):
        candidates = (target,) if distance == 0 else (target + distance, target - distance)
        for pos in candidates:
            if floor <= pos <= last:
                found = _mismatches(lines, pos, hunk, fuzz)
                if found is not None:
                    return pos, found
    return None


def _splice(lines: List[str], hunk: Hunk, pos: int) -> List[str]:
    """Build the replacement block. Context keeps the document's own text."""
    out: List[str] = []
    cursor = pos
    for line in hunk.lines:
        op, text = line[0], line[1:]
        if op == " ":
            out.append(lines[cursor])
            cursor += 1
        elif op == "-":
            cursor += 1
        else:
            out.append(text)
    return out


def apply_unified_diff(original: str, diff_text: str, *, fuzz: int = DEFAULT_FUZZ) -> str:
    """Apply every hunk of *diff_text* to *original* and return the new text.

    Hunks apply in order; each is searched at or after the end of the
    previous one, starting from its declared line shifted by the running
    offset. Raises PatchConflictError when a hunk cannot be located.
    """
    lines = original.split("\n")
    offset = 0
    floor = 0

    for number, hunk in enumerate(parse_hunks(diff_text), start=1):
        # a zero-length old range names the line *after which* to insert
        base = hunk.old_start if hunk.old_count == 0 else hunk.old_start - 1
        target = min(max(base + offset, floor), len(lines))

        located = _locate(lines, hunk, target, floor, fuzz)
        if located is None:
            raise PatchConflictError(
                f"Hunk #{number} ({hunk.header}) does not match the current page "
                f"content, even allowing {fuzz} lines of context drift. The page "
                "has probably changed since the diff was generated: re-read it "
                "with --numbered-lines and regenerate the diff.",
                details={"hunk": number, "header": hunk.header},
            )
        pos, drift = located
        if pos != target or drift:
            logger.debug(
                "Hunk #%d applied at line %d (offset %+d, fuzz %d).",
                number, pos + 1, pos - target, drift,
            )

        replacement = _splice(lines, hunk, pos)
        consumed = len(hunk.old_lines)
        lines[pos:pos + consumed] = replacement
        offset = pos - base + len(replacement) - consumed
        floor = pos + len(replacement)

    return "\n".join(lines)
