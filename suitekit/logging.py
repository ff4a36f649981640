"""Console logging for the CLI and the API server."""

from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

ROOT_LOGGER = "suitekit"

# Per-request INFO lines from these drown out run progress.
_NOISY = ("httpx", "httpcore", "anthropic")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the ``suitekit`` hierarchy; the package logger when unnamed."""
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
