"""Error taxonomy with structured codes and exit codes.

Every message is sanitised on construction so tokens never reach the
terminal, the JSON envelope or a traceback.
"""

from __future__ import annotations

import math
from enum import Enum, IntEnum
from typing import Any, Optional

from notionpatch.redactor import sanitize_message


class ExitCode(IntEnum):
    SUCCESS = 0
    GENERAL_ERROR = 1
    VALIDATION_ERROR = 2
    AUTH_ERROR = 3
    NOT_FOUND = 4
    RATE_LIMITED = 5


class ErrorCode(str, Enum):
    GENERAL_ERROR = "GENERAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    PATCH_CONFLICT = "PATCH_CONFLICT"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"


class NotionPatchError(Exception):
    """Base error carrying a machine-readable code and a process exit code."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.GENERAL_ERROR,
        exit_code: ExitCode = ExitCode.GENERAL_ERROR,
        details: Any = None,
    ) -> None:
        self.message = sanitize_message(message)
        super().__init__(self.message)
        self.code = code
        self.exit_code = exit_code
        self.details = details


class AuthError(NotionPatchError):
    def __init__(
        self,
        message: str = "Authentication failed. Set NOTION_TOKEN or use --token.",
    ) -> None:
        super().__init__(message, ErrorCode.AUTH_ERROR, ExitCode.AUTH_ERROR)


class ValidationError(NotionPatchError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(
            message, ErrorCode.VALIDATION_ERROR, ExitCode.VALIDATION_ERROR, details
        )


class NotFoundError(NotionPatchError):
    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            f"{resource} not found: {identifier}. "
            "Check the ID and that the integration has access to it.",
            ErrorCode.NOT_FOUND,
            ExitCode.NOT_FOUND,
        )
        self.resource = resource
        self.identifier = identifier


class RateLimitError(NotionPatchError):
    """Remote throttling. *retry_after* is in seconds."""

    def __init__(self, retry_after: float = 1.0) -> None:
        wait = max(1, math.ceil(retry_after))
        super().__init__(
            f"Rate limited by Notion API. Retry after {wait}s.",
            ErrorCode.RATE_LIMITED,
            ExitCode.RATE_LIMITED,
        )
        self.retry_after = retry_after


class PatchConflictError(NotionPatchError):
    def __init__(
        self,
        message: str = (
            "Patch cannot be applied: page content has changed since last read. "
            "Re-read the page with --numbered-lines and regenerate the diff."
        ),
        details: Any = None,
    ) -> None:
        super().__init__(
            message, ErrorCode.PATCH_CONFLICT, ExitCode.GENERAL_ERROR, details
        )


class RetriesExhaustedError(NotionPatchError):
    """Raised once a transient failure persisted through every attempt."""

    def __init__(
        self,
        label: str,
        attempts: int,
        last_error: BaseException,
        state: Any = None,
    ) -> None:
        rate_limited = isinstance(last_error, RateLimitError) or (
            getattr(last_error, "status", None) == 429
        )
        super().__init__(
            f"{label} failed after {attempts} attempt(s): {last_error}. "
            "Back off for a while before retrying.",
            ErrorCode.RETRIES_EXHAUSTED,
            ExitCode.RATE_LIMITED if rate_limited else ExitCode.GENERAL_ERROR,
            {"label": label, "attempts": attempts},
        )
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        self.state = state


def notion_error_code(err: BaseException) -> str:
    """Return the Notion API error code of *err* (``""`` when absent)."""
    code = getattr(err, "code", None)
    if code is None:
        return ""
    return str(getattr(code, "value", code))


def retry_after_of(err: BaseException) -> Optional[float]:
    """Seconds from a ``Retry-After`` response header, if *err* carries one."""
    headers = getattr(err, "headers", None)
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    try:
        return float(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def to_cli_error(err: BaseException | str) -> NotionPatchError:
    """Convert any raised value into a NotionPatchError.

    Notion SDK errors are recognised by shape (``status`` / ``code``) so the
    mapping does not depend on the SDK's class hierarchy.
    """
    if isinstance(err, NotionPatchError):
        return err
    if not isinstance(err, BaseException):
        return NotionPatchError(str(err))

    status = getattr(err, "status", None)
    code = notion_error_code(err)

    if status == 401 or code == "unauthorized":
        return AuthError()
    if status == 403 or code == "restricted_resource":
        return AuthError(
            "The integration is not allowed to access this resource. "
            "Share the page with the integration and retry."
        )
    if status == 404 or code == "object_not_found":
        return NotFoundError("Resource", "unknown")
    if status == 429 or code == "rate_limited":
        return RateLimitError(retry_after_of(err) or 1.0)
    if status == 400 or code == "validation_error":
        return ValidationError(str(err) or "Notion rejected the request.")

    return NotionPatchError(str(err) or type(err).__name__)
