"""
Logging setup for the web service and the harvester thread.

Call configure_logging() once from the entry point.
"""
import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"

# Jira paging and embedding calls log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "openai")


def resolve_level(level: Optional[int | str] = None) -> int:
    """Explicit level, else LOG_LEVEL from the environment, else INFO."""
    value = level if level is not None else os.environ.get("LOG_LEVEL", "INFO")
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[int | str] = None) -> None:
    logging.basicConfig(
        level=resolve_level(level),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
