"""
Logging bootstrap for processes that embed the pipeline.

Library modules only create module loggers; configuring handlers is left to
the host process, which calls configure_logging() once at startup.
"""

import logging
from typing import Union

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_logging(level: Union[str, int] = logging.INFO) -> None:
    """Configure root logging with the pipeline's line format."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )
    logging.getLogger(__name__).debug(
        f"[LOGGING] Root logging configured | level={logging.getLevelName(level)}"
    )
