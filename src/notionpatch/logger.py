"""Logging setup: status and diagnostics go to stderr through rich.

Data (Markdown, CSV, JSON envelopes) is written to stdout by the output
module, so piping ``notionpatch page read`` stays clean.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "notionpatch"

_handler: Optional[RichHandler] = None


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> logging.Logger:
    """Attach a single RichHandler to the package logger.

    WARNING and above by default; DEBUG with ``--verbose``. Safe to call
    repeatedly (each CLI invocation in tests calls it).
    """
    global _handler
    log = logging.getLogger(LOGGER_NAME)

    if _handler is not None:
        log.removeHandler(_handler)
    _handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    _handler.setFormatter(logging.Formatter("%(message)s"))
    log.addHandler(_handler)
    log.setLevel(logging.DEBUG if verbose else logging.WARNING)
    log.propagate = False
    return log
