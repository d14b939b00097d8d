import logging
import os
import sys
from typing import Optional, Union
from flask import Flask

# Vendor HTTP clients log every request at INFO
NOISY_LOGGERS = ('urllib3', 'httpx', 'hpack')


def configure_logging(app_name: Union[str, Flask] = "harbor", log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        app_name: Name of the application logger or the Flask app instance.
            Module loggers below this name propagate to its handler.
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Falls back to the app's LOG_LEVEL setting, then the LOG_LEVEL
            environment variable, then INFO.

    Returns:
        Configured logger instance
    """
    if isinstance(app_name, Flask):
        logger_name = app_name.name
        if log_level is None:
            log_level = app_name.config.get("LOG_LEVEL")
    else:
        logger_name = str(app_name)

    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")
    log_level = log_level.upper()

    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
