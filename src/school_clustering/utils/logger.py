"""
Logging setup for clustering runs.

The package logs through module-level loggers under ``school_clustering``;
this module attaches the console and per-run file handlers to that parent.
"""

import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'


def run_log_path(log_dir: Union[str, Path], module_name: str = "school_clustering") -> Path:
    """Timestamped log file path for one clustering run."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / f"{module_name}_{timestamp}.log"


def setup_logging(
    enable_file_logging: bool = False,
    log_level: str = "INFO",
    log_dir: Union[str, Path] = Path("logs"),
    module_name: str = "school_clustering"
) -> logging.Logger:
    """
    Attach handlers to the package logger.

    Calling this again replaces the handlers from the previous call, so a
    pipeline built with a new config does not log twice.

    Args:
        enable_file_logging: Also write DEBUG-level records to a run log file
        log_level: Console level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for run log files
        module_name: Logger to configure

    Returns:
        The configured logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(module_name)
    logger.setLevel(logging.DEBUG if enable_file_logging else level)

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    log_file: Optional[Path] = None
    if enable_file_logging:
        log_file = run_log_path(log_dir, module_name)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.debug(f"Logging configured: level={log_level.upper()}, log_file={log_file}")
    return logger
