# core/logger.py
import logging
from wkhtmltos3.core.config import settings

logger = logging.getLogger("wkhtmltos3")
logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
logger.propagate = False

# Console handler on stderr: timestamp, level, logger name, message
if not logger.handlers:
    _console = logging.StreamHandler()
    _console.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    _console.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    logger.addHandler(_console)
