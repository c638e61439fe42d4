"""Logging setup shared by the command-line entry points."""

import logging

from rich.logging import RichHandler


def setup_logging(verbose: int = 0) -> None:
    """Route log records through rich. ``-v`` shows INFO, ``-vv`` DEBUG."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # botocore logs every request at DEBUG
    logging.getLogger("botocore").setLevel(max(level, logging.INFO))
