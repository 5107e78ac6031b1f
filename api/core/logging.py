"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)` and emit
`event_name key=value` style messages.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def configure_logging() -> None:
    global _configured
    if _configured:
        return None

    level_name = settings.env_str("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)

    # APScheduler logs every job run at INFO.
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
    _configured = True
