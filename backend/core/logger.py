"""
Signing Log Sink
================
Loguru sinks for the signing backend.

Every record carries ``req_id``: the HTTP middleware binds a six digit id
per request, and anything logged outside a request (startup, background
archive threads) shows ``BOOT``. Configured from the environment:

- LOG_LEVEL     minimum level (default INFO)
- LOG_TO_FILE   "0" disables the rotating file sink (tests)
"""

from __future__ import annotations
import logging
import os
import sys
from pathlib import Path

from loguru import logger

LOG_PATH = Path(__file__).parent.parent / "logs" / "signing.log"

LINE = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | req={extra[req_id]} | {name}:{line} | {message}"
COLOR_LINE = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<magenta>req={extra[req_id]}</magenta> | <cyan>{name}:{line}</cyan> | <level>{message}</level>"
)

# Library loggers routed into loguru
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "celery")


class LoguruBridge(logging.Handler):
    """Forward stdlib ``logging`` records (uvicorn, celery) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logger(level: str = "INFO", to_file: bool = True) -> None:
    """(Re)install the console sink and, when ``to_file``, the rotating file sink."""
    logger.remove()
    logger.configure(extra={"req_id": "BOOT"})

    logger.add(sys.stderr, format=COLOR_LINE, level=level, colorize=True, diagnose=False)
    if to_file:
        LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(LOG_PATH),
            format=LINE,
            level=level,
            rotation="50 MB",
            retention="14 days",
            compression="zip",
            enqueue=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[LoguruBridge()], level=0, force=True)
    for name in ROUTED_LOGGERS:
        logging.getLogger(name).handlers = [LoguruBridge()]
        logging.getLogger(name).propagate = False

    logger.debug(f"LOGGER_READY level={level} file={LOG_PATH if to_file else '-'}")


setup_logger(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    to_file=os.environ.get("LOG_TO_FILE", "1") == "1",
)
