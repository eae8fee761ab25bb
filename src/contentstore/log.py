"""Logging setup for the contentstore package.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed by the CLI (or an embedding application) through configure_logging().
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "contentstore"


def configure_logging(
    level: int | str = logging.WARNING, console: Console | None = None
) -> logging.Logger:
    """Attach a single RichHandler to the package logger and set its level.

    Calling it again replaces the previous handler instead of stacking a
    second one. Output goes to stderr so command output on stdout stays clean.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
