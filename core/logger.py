"""
Logging setup for the application.
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: Optional[str] = None,
                 level: Union[int, str] = logging.INFO,
                 log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configures a logger for the application.

    Args:
        name (str, optional): Logger name. Defaults to the root logger.
        level (int | str, optional): Logging level. Defaults to INFO.
        log_file (str | Path, optional): Log file path. File logging is off when None.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Drop handlers from a previous setup call
    if logger.handlers:
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
