"""Logging setup for the GRIB overlay backend: console plus a rotating file under the log dir."""
import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def log_dir() -> str:
    """GRIBVIEW_LOG_DIR if set, else backend/logs."""
    return os.environ.get("GRIBVIEW_LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")


def _file_handler(log_name: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    directory = log_dir()
    os.makedirs(directory, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(directory, f"{log_name}.log"),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(name: str, level: str = "INFO", log_name: str = "gribview") -> logging.Logger:
    """Return the named logger, attaching handlers on first use.

    Args:
        name: Logger name (usually __name__)
        level: Level for the logger and the file handler (DEBUG, INFO, ...)
        log_name: Base name of the rotating log file

    The console handler stays at INFO so per-request debug lines only reach the file.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    log_level = getattr(logging, str(level).upper(), logging.INFO)
    logger.setLevel(log_level)
    logger.propagate = False

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    logger.addHandler(console)

    logger.addHandler(_file_handler(log_name, log_level, formatter))
    return logger
