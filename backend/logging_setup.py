import logging
import sys
from typing import Optional

from config import LOG_LEVEL, normalize_log_level

LOGGER_NAME = "fusion_demo"


class Color:
    RESET = "\x1b[0m"
    GRAY = "\x1b[90m"
    GREEN = "\x1b[32m"
    YELLOW = "\x1b[33m"
    RED = "\x1b[31m"
    BLUE = "\x1b[34m"
    CYAN = "\x1b[36m"
    BOLD = "\x1b[1m"


class ColorFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": Color.GRAY,
        "INFO": Color.BLUE,
        "WARNING": Color.YELLOW,
        "ERROR": Color.RED,
        "CRITICAL": Color.RED + Color.BOLD,
    }

    def __init__(self, fmt: str = "%(message)s", use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        timestamp = self.formatTime(record, "%H:%M:%S")
        if not self.use_color:
            return f"{timestamp} | {record.levelname:<7} | {record.name} | {message}"
        color = self.COLORS.get(record.levelname, "")
        return (
            f"{Color.GRAY}{timestamp}{Color.RESET} | "
            f"{color}{record.levelname:<7}{Color.RESET} | "
            f"{Color.CYAN}{record.name}{Color.RESET} | {message}"
        )


def setup_logging(level: Optional[str] = None, stream=None) -> logging.Logger:
    """
    Configure console logging once and return the application logger.

    The returned logger is handed to every component instead of being looked
    up globally.
    """
    stream = stream or sys.stdout
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColorFormatter(use_color=hasattr(stream, "isatty") and stream.isatty()))

    root = logging.getLogger()
    root.setLevel(level or normalize_log_level(LOG_LEVEL) or "INFO")
    root.handlers[:] = [handler]

    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)

    return logging.getLogger(LOGGER_NAME)
