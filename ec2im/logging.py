"""Logging configuration helpers."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(
    level: str = "WARNING", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional filesystem path for a file handler. When absent, only console logging is configured.
    log_network:
        When true, keep verbose aiohttp loggers at the requested level to aid diagnostics.

    Console output always goes to stderr; stdout is reserved for envelopes.
    """

    logging.captureWarnings(True)

    for handler in list(logging.getLogger().handlers):
        logging.getLogger().removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=_FORMAT,
        stream=sys.stderr,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(_FORMAT))
        logging.getLogger().addHandler(file_handler)

    if not log_network:
        logging.getLogger("aiohttp.client").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
