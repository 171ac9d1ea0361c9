"""Logging setup shared by every lensbundler command.

Records from all modules flow through the ``lensbundler`` logger. The console
handler writes to stderr so that listings and JSON reports on stdout stay
machine readable; an optional file sink keeps DEBUG detail regardless of the
console threshold.
"""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "lensbundler"
CONSOLE_FORMAT = "[lensbundler] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``lensbundler.<name>``; already-qualified names are used as-is."""
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def console_level(*, verbose: bool = False, quiet: bool = False) -> int:
    # verbose wins over quiet
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install the console handler and, when ``log_file`` is set, a UTF-8 file sink.

    Existing handlers on the package logger are closed and replaced, so calling
    this once per command invocation never duplicates output.
    """
    logger = get_logger()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    threshold = console_level(verbose=verbose, quiet=quiet)
    console = logging.StreamHandler()
    console.setLevel(threshold)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)
        threshold = logging.DEBUG

    logger.setLevel(threshold)
    return logger


__all__ = ["configure_logging", "console_level", "get_logger"]
