"""
Logging configuration module.

One log file per calendar day, named after the process start time.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "job_engine"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HHMMSS of the first handler created in this process
_PROCESS_START_TIME: Optional[str] = None


def _today() -> str:
    return datetime.now().strftime("%Y%m%d")


class DailyRotatingFileHandler(logging.FileHandler):
    """
    File handler that switches files when the local date changes.

    File name: <log_dir>/<prefix>_YYYYMMDD_<START_HHMMSS>.log
    START_HHMMSS stays fixed for the lifetime of the process.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        encoding: str = "utf-8",
        prefix: str = LOGGER_NAME,
    ):
        global _PROCESS_START_TIME

        if _PROCESS_START_TIME is None:
            _PROCESS_START_TIME = datetime.now().strftime("%H%M%S")

        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self._start_hhmmss = _PROCESS_START_TIME
        self._current_date = _today()

        super().__init__(self._path_for(self._current_date), mode="a", encoding=encoding)

    def _path_for(self, date_str: str) -> str:
        return str(self.log_dir / f"{self.prefix}_{date_str}_{self._start_hhmmss}.log")

    def emit(self, record: logging.LogRecord) -> None:
        today = _today()
        if today != self._current_date:
            self.close()
            self._current_date = today
            self.baseFilename = self._path_for(today)
            self.stream = self._open()

        super().emit(record)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
) -> logging.Logger:
    """
    Configure the engine logger and return it.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for daily log files. None logs to the console only.

    Returns:
        The "job_engine" logger. Module loggers under the package
        (logging.getLogger(__name__)) write through its handlers.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated calls replace handlers instead of stacking them
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        handlers.append(DailyRotatingFileHandler(log_dir=log_dir))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    target = handlers[-1].baseFilename if log_dir is not None else "console only"
    logger.info(f"Logging started - level: {log_level}, output: {target}")
    return logger
