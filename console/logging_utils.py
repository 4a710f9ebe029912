"""
Logging setup shared by the API entry points.

    from console.logging_utils import setup_logging
    setup_logging("INFO")
"""

import logging
import sys
from typing import Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
]

_HANDLER_NAME = "token-console"


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Install a single stream handler on the root logger; safe to call repeatedly."""
    root = logging.getLogger()
    root.setLevel(level)

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
