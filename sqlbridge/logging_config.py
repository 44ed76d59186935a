"""Logging setup shared by the CLI and embedding applications."""

import logging
from typing import Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """Configure root logging for SQLBridge.

    Args:
        level: Logging level as an int or a level name such as ``"DEBUG"``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger('sqlbridge').setLevel(level)
