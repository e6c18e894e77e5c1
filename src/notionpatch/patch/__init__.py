"""Patch engine: line ranges, unified diffs, append and prepend."""

from notionpatch.patch.engine import apply_patch_operation, build_result
from notionpatch.patch.hunks import Hunk, apply_unified_diff, is_valid_unified_diff, parse_hunks
from notionpatch.patch.models import (
    TO_END,
    Append,
    LineBound,
    LineRange,
    PatchOperation,
    PatchResult,
    Prepend,
    UnifiedDiff,
)
from notionpatch.patch.numbering import add_line_numbers, strip_line_numbers

__all__ = [
    "TO_END",
    "Append",
    "Hunk",
    "LineBound",
    "LineRange",
    "PatchOperation",
    "PatchResult",
    "Prepend",
    "UnifiedDiff",
    "add_line_numbers",
    "apply_patch_operation",
    "apply_unified_diff",
    "build_result",
    "is_valid_unified_diff",
    "parse_hunks",
    "strip_line_numbers",
]
