"""
Logging setup.

Library modules log through the shared loguru ``logger`` and never touch sinks;
entry points call ``setup_logging`` once.
"""

import os
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    rotation: str = "1 day",
    retention: str = "30 days",
) -> None:
    """
    Replace loguru's default sink with a stderr sink and, optionally, a daily
    rotating file sink under ``log_dir``.

    Args:
        level: Minimum level for every sink
        log_dir: Directory for ``{date}.log`` files; no file sink if None
        rotation: loguru rotation policy for the file sink
        retention: loguru retention policy for the file sink
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            sink=os.path.join(log_dir, "{time:YYYY-MM-DD}.log"),
            rotation=rotation,
            retention=retention,
            level=level,
            format=LOG_FORMAT,
            backtrace=True,
            diagnose=False,
        )

    logger.debug("Logging configured (level={})", level)
