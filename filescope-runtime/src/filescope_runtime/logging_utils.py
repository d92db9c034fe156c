"""
Logging setup for processes that embed the context selector.

Every module of the package logs through ``logging.getLogger(__name__)`` and
never configures handlers itself. Hosts that have no logging setup of their own
call `configure_logging` once at startup:

- ``FILESCOPE_LOG_LEVEL`` sets the root level (default ``INFO``).
- ``FILESCOPE_SELECTOR_LOG_LEVEL`` sets the level of the ``filescope_runtime``
  logger tree only, e.g. ``DEBUG`` to trace cache hits and negotiations while
  the rest of the process stays at ``INFO``.
- ``FILESCOPE_LOG_FORMAT`` overrides the record format.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Final, Optional

PACKAGE_LOGGER: Final[str] = "filescope_runtime"
DEFAULT_FORMAT: Final[str] = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT: Final[str] = "%Y-%m-%d %H:%M:%S"
_CONFIGURED: bool = False


def _resolve_level(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def configure_logging(*, force: bool = False, level: Optional[str] = None) -> None:
    """
    Streams log records to stdout with a uniform format.

    Args:
        force: Remove existing root handlers and configure again.
        level: Root level name; takes precedence over ``FILESCOPE_LOG_LEVEL``.
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    root_logger = logging.getLogger()
    if force:
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)

    root_level = _resolve_level(level or os.environ.get("FILESCOPE_LOG_LEVEL"))
    root_logger.setLevel(root_level)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            fmt=os.environ.get("FILESCOPE_LOG_FORMAT", DEFAULT_FORMAT),
            datefmt=DEFAULT_DATEFMT,
        )
    )
    root_logger.addHandler(handler)

    selector_level = os.environ.get("FILESCOPE_SELECTOR_LOG_LEVEL")
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(_resolve_level(selector_level) if selector_level else logging.NOTSET)

    # Provider SDKs log every request at INFO.
    for noisy in ("httpx", "langchain", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, root_level))

    _CONFIGURED = True
