"""
dexmirror - Logging setup.

``dexmirror.app`` calls ``configure_logging()`` at import time. Every other
module just does ``logging.getLogger(__name__)``; records end up on stdout
as ``time [LEVEL] dexmirror.catalog.range_sync: message``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Iterable, Optional, TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that drown out sync/rate-limit lines at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "redis", "uvicorn.access")

_configured = False


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Optional[str] = None,
    stream: TextIO = sys.stdout,
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Install the dexmirror handler on the root logger (first call only).

    ``level`` overrides ``LOG_LEVEL``; unknown names mean INFO. A root
    handler already installed by uvicorn is left alone and only the level
    is applied.
    """
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))
    if not root.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        root.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
