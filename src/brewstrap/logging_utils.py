"""Logging setup shared by every entrypoint.

Modules log through ``logging.getLogger(__name__)``; this configures the
root logger once. Level precedence is CLI flag, then ``BREWSTRAP_LOG_LEVEL``,
then the manifest's ``log_level``, then WARNING.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "BREWSTRAP_LOG_LEVEL"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def resolve_level(cli_level: str | None, config_level: str | None = None) -> int:
    for candidate in (cli_level, os.environ.get(LOG_LEVEL_ENV), config_level):
        if candidate:
            numeric = getattr(logging, candidate.upper(), None)
            if isinstance(numeric, int):
                return numeric
    return logging.WARNING


def setup_logging(level: int = logging.WARNING, log_file: Path | None = None) -> None:
    """Configure the root logger with a rich console handler and optional file."""

    root = logging.getLogger()
    root.handlers.clear()

    console = RichHandler(
        console=Console(stderr=True),
        show_path=level <= logging.DEBUG,
        rich_tracebacks=True,
    )
    console.setLevel(level)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(handler)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(level)
