"""
Logging setup for command-line and embedded use.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = 'surveillance_engine'
LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(level: int = logging.INFO,
                  log_file: Optional[Union[str, Path]] = None) -> logging.Logger:
    """
    Configure the package logger with a console handler and an optional file.

    Calling it twice does not duplicate handlers.

    Args:
        level: Logging level for the package logger
        log_file: Optional path of a UTF-8 log file (e.g. base_dir/app.log)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, '_surveillance_console', False) for h in logger.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        console._surveillance_console = True
        logger.addHandler(console)

    if log_file is not None:
        log_path = str(Path(log_file).resolve())
        existing = [h for h in logger.handlers
                    if isinstance(h, logging.FileHandler) and h.baseFilename == log_path]
        if not existing:
            fh = logging.FileHandler(log_path, encoding='utf-8')
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    for handler in logger.handlers:
        handler.setLevel(level)

    logger.debug(f'Logging initialized (level={logging.getLevelName(level)}, file={log_file})')
    return logger
