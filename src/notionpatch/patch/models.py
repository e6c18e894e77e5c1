"""Patch operation and result models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class LineBound(str, Enum):
    """Symbolic line bounds. ``END`` resolves to the document's last line."""

    END = "end"


TO_END = LineBound.END


@dataclass(frozen=True, slots=True)
class LineRange:
    """Replace the inclusive, 1-indexed range [start, end] with *content*.

    An *end* past the document is clamped; a *start* before line 1 is
    rejected. Empty *content* deletes the range.
    """

    start: int
    end: Union[int, LineBound]
    content: str


@dataclass(frozen=True, slots=True)
class UnifiedDiff:
    """Apply a unified diff to the document."""

    patch: str


@dataclass(frozen=True, slots=True)
class Append:
    content: str


@dataclass(frozen=True, slots=True)
class Prepend:
    content: str


PatchOperation = Union[LineRange, UnifiedDiff, Append, Prepend]


@dataclass(frozen=True, slots=True)
class PatchResult:
    """Outcome of a successful patch operation."""

    patched: str
    diff: str  # unified diff, 3 lines of context, empty file labels
    lines_changed: int  # added + removed body lines
