"""Patch engine: apply edits to Markdown content.

Pure and synchronous: no I/O and no state between calls. Either a complete
PatchResult comes back or an error is raised; nothing is partially applied.

Line ranges are 1-indexed and inclusive. A start before line 1 is rejected;
an end past the last line is clamped.
"""

from __future__ import annotations

import difflib
import logging

from notionpatch.errors import ValidationError
from notionpatch.patch.hunks import DEFAULT_FUZZ, apply_unified_diff, is_valid_unified_diff
from notionpatch.patch.models import (
    Append,
    LineBound,
    LineRange,
    PatchOperation,
    PatchResult,
    Prepend,
    UnifiedDiff,
)

logger = logging.getLogger(__name__)

DIFF_CONTEXT_LINES = 3


def apply_patch_operation(original: str, operation: PatchOperation) -> PatchResult:
    """Apply *operation* to *original* and return the patched text with its diff."""
    if isinstance(operation, LineRange):
        patched = _apply_line_range(original, operation)
    elif isinstance(operation, UnifiedDiff):
        patched = _apply_unified_diff(original, operation)
    elif isinstance(operation, Append):
        patched = _apply_append(original, operation)
    elif isinstance(operation, Prepend):
        patched = _apply_prepend(original, operation)
    else:
        raise ValidationError(f"Unsupported patch operation: {type(operation).__name__}")
    return build_result(original, patched)


def _apply_line_range(original: str, op: LineRange) -> str:
    lines = original.split("\n")
    total = len(lines)

    if op.start < 1:
        raise ValidationError(
            "Line range start must be >= 1. Line numbers are 1-based; "
            "read the page with --numbered-lines to find them."
        )
    if op.start > total + 1:
        raise ValidationError(
            f"Start line {op.start} exceeds document length ({total} lines). "
            f"Use a start between 1 and {total + 1}."
        )

    end = total if op.end == LineBound.END else op.end
    if end < op.start - 1:
        raise ValidationError(
            f"Line range end ({end}) must be >= start ({op.start}), "
            f"or {op.start - 1} to insert before line {op.start}."
        )
    effective_end = min(end, total)
    new_lines = op.content.split("\n") if op.content else []

    logger.debug(
        "Replacing lines %d-%d (of %d) with %d lines.",
        op.start, effective_end, total, len(new_lines),
    )
    return "\n".join(lines[: op.start - 1] + new_lines + lines[effective_end:])


def _apply_unified_diff(original: str, op: UnifiedDiff) -> str:
    if not is_valid_unified_diff(op.patch):
        raise ValidationError(
            "Not a unified diff: no hunk header of the form "
            "'@@ -start,count +start,count @@' was found. Generate the diff "
            "against the page's current Markdown."
        )
    return apply_unified_diff(original, op.patch, fuzz=DEFAULT_FUZZ)


def _apply_append(original: str, op: Append) -> str:
    if original.endswith("\n"):
        return original + op.content
    return f"{original}\n{op.content}"


def _apply_prepend(original: str, op: Prepend) -> str:
    return f"{op.content}\n{original}"


def build_result(original: str, patched: str) -> PatchResult:
    """Diff *original* against *patched* and count the changed lines."""
    diff_lines = list(
        difflib.unified_diff(
            original.split("\n"),
            patched.split("\n"),
            fromfile="",
            tofile="",
            n=DIFF_CONTEXT_LINES,
            lineterm="",
        )
    )
    # first two lines are the ---/+++ file headers
    changed = sum(
        1 for line in diff_lines[2:] if line[:1] in ("+", "-")
    )
    diff = "\n".join(diff_lines) + "\n" if diff_lines else ""
    return PatchResult(patched=patched, diff=diff, lines_changed=changed)
