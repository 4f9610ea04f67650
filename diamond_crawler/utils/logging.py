from __future__ import annotations

import logging
import os
import sys

# Libraries whose chatter would drown the per-leaf progress lines.
_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


def _resolve_level(level: str | int | None) -> int:
    if level is None:
        level = os.getenv("DIAMOND_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int | None = None) -> None:
    """
    Configure application logging on stderr, leaving stdout free for "--output -".
    """
    resolved = _resolve_level(level)
    logging.basicConfig(
        level=resolved,
        stream=sys.stderr,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
