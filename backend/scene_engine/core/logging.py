"""Logging setup shared by the API process and the render worker."""

import logging
import sys
from typing import Optional

from scene_engine.core.config import settings

_LOGGING_INITIALIZED = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; later calls are no-ops."""
    global _LOGGING_INITIALIZED
    if _LOGGING_INITIALIZED:
        return

    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    log_level = logging.getLevelName(resolved)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))

    _LOGGING_INITIALIZED = True
