"""
Logging Configuration for MCR

Console and optional rotating-file logging for the `mcr` package, with a
structured JSON formatter that includes the `extra_fields` attached to
records such as LLM call events.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

PACKAGE_LOGGER = "mcr"
TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


def setup_logging(log_level: str = "INFO",
                  log_file: Optional[Union[str, Path]] = None,
                  structured: bool = False) -> logging.Logger:
    """
    Configure the `mcr` logger.

    Replaces handlers previously installed on the package logger, so
    calling this twice does not duplicate output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
        structured: Emit JSON lines instead of plain text

    Returns:
        The configured package logger
    """
    level = getattr(logging, log_level.upper())
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = StructuredFormatter() if structured else logging.Formatter(TEXT_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # External libraries
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logger
