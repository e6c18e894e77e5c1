"""Validation of command-line inputs before they reach the API."""

from __future__ import annotations

import re
from typing import Tuple, Union

from notionpatch.errors import ValidationError
from notionpatch.patch.models import LineBound

_LINE_RANGE_RE = re.compile(r"^(\d+):(\d+|end)$", re.IGNORECASE)

MAX_PAGE_SIZE = 100


def parse_line_range(text: str) -> Tuple[int, Union[int, LineBound]]:
    """Parse ``START:END`` (or ``START:end``) into a 1-based inclusive range."""
    match = _LINE_RANGE_RE.match(text.strip())
    if not match:
        raise ValidationError(
            "Line range must be in format START:END (e.g., \"192:256\" or \"10:end\"). "
            "Both start and end are required."
        )
    start = int(match.group(1))
    if start < 1:
        raise ValidationError(
            "Line range start must be >= 1. Line numbers are 1-based; "
            "read the page with --numbered-lines to find them."
        )
    if match.group(2).lower() == "end":
        return start, LineBound.END

    end = int(match.group(2))
    # START:START-1 is an empty range: insert before START
    if end < start - 1:
        raise ValidationError(
            f"Line range end ({end}) must be >= start ({start}), "
            f"or {start - 1} to insert before line {start}."
        )
    return start, end


def validate_limit(limit: int) -> int:
    if limit < 1:
        raise ValidationError("Limit must be >= 1.")
    if limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be <= {MAX_PAGE_SIZE}.")
    return limit
