"""Logging setup for command-line use.

Library modules only create ``logging.getLogger(__name__)`` loggers; the CLI
calls ``setup_logging`` once to route them to a rich handler on stderr.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def setup_logging(level: str | int = "WARNING") -> None:
    """Configure the root logger with a rich handler writing to stderr."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    # GitPython logs every git command at debug level
    logging.getLogger("git").setLevel(max(level, logging.INFO))
