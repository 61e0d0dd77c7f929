from __future__ import annotations

import logging
from typing import Optional

LOGGER_NAME = "idrac_fan_controller"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "info", log_file: Optional[str] = None) -> logging.Logger:
    """Create the controller logger: stderr always, plus `log_file` if writable.

    Only records at or above `level` are emitted. Calling it again replaces
    the handlers, so the level can be raised once the configuration is known.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)
    if log_file:
        try:
            fh = logging.FileHandler(log_file)
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file} ({e}); logging to stderr only")
        else:
            fh.setFormatter(fmt)
            logger.addHandler(fh)
    return logger
