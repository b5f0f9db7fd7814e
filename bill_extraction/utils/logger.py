"""
Logging Configuration Module.

All loggers of the system live under the "bill_extraction" namespace.
The application logger owns the handlers (colored console, optional
rotating file); module loggers obtained with get_logger(__name__) are
its children and only emit.

Usage:
    from bill_extraction.utils.logger import setup_logger_from_config, get_logger

    setup_logger_from_config()          # once, at startup
    logger = get_logger(__name__)       # in every module
    logger.info(f"Transfer {transfer_id} complete")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

import colorama
from colorama import Fore, Style

colorama.init()

APP_LOGGER_NAME = "bill_extraction"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """
    Formatter coloring whole console lines by level.

    Colors:
        - DEBUG: Cyan (per-field matching decisions)
        - INFO: Green (stage results)
        - WARNING: Yellow (recoverable anomalies: bad chunk, decoder fallback)
        - ERROR / CRITICAL: Red
    """

    COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = self.COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{Style.RESET_ALL}"


def parse_level(level: Union[str, int]) -> int:
    """
    Numeric logging level from a name or number.

    Raises:
        ValueError: For unknown level names.
    """
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown logging level: {level}")
    return value


def set_level(level: Union[str, int]) -> None:
    """Change the level of the application logger and its handlers."""
    numeric = parse_level(level)
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(numeric)
    for handler in app_logger.handlers:
        handler.setLevel(numeric)


def setup_logger(
    level: Union[str, int] = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10 MB
    backup_count: int = 5,
    colorize: bool = True,
    stream=None
) -> logging.Logger:
    """
    Configure the application logger.

    Calling it again replaces the previous handlers.

    Args:
        level: Logging level name or number.
        log_format: Record format; DEFAULT_FORMAT if None.
        date_format: Timestamp format; DEFAULT_DATE_FORMAT if None.
        log_file: Rotating log file path. If None, file logging is disabled.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        colorize: Color console lines by level.
        stream: Console stream, stdout by default. The CLI passes stderr
            when it prints JSON results to stdout.

    Returns:
        Configured application logger.

    Example:
        >>> setup_logger(level="DEBUG", log_file="logs/bill_extraction.log")
    """
    numeric = parse_level(level)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(numeric)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream or sys.stdout)
    formatter_class = ColoredFormatter if colorize else logging.Formatter
    console_handler.setFormatter(formatter_class(log_format, datefmt=date_format))
    console_handler.setLevel(numeric)
    app_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        # No color codes in files
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        file_handler.setLevel(numeric)
        app_logger.addHandler(file_handler)

    app_logger.propagate = False
    app_logger.debug(
        f"Logging initialized (level={logging.getLevelName(numeric)}, "
        f"file={log_file or 'disabled'})"
    )
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """
    Module logger under the application namespace.

    Example:
        >>> get_logger("bill_extraction.protocol.handler").name
        'bill_extraction.protocol.handler'
        >>> get_logger("main").name
        'bill_extraction.main'
    """
    if name == APP_LOGGER_NAME or name.startswith(APP_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")


def setup_logger_from_config(stream=None) -> logging.Logger:
    """
    Configure logging from the "logging" and "paths" settings.

    The log file, when enabled, is logging.file.name inside paths.log_dir.
    An invalid level in the settings falls back to INFO.

    Args:
        stream: Optional console stream passed through to setup_logger.

    Returns:
        Configured application logger.
    """
    from config import ConfigurationManager

    config = ConfigurationManager()
    settings = config.get_section("logging")
    file_settings = settings.get('file') or {}

    log_file = None
    if file_settings.get('enabled', False):
        log_dir = Path(config.get("paths.log_dir", "logs"))
        log_file = str(log_dir / file_settings.get('name', f"{APP_LOGGER_NAME}.log"))

    options = dict(
        log_format=settings.get('format'),
        date_format=settings.get('date_format'),
        log_file=log_file,
        max_bytes=file_settings.get('max_bytes', 10485760),
        backup_count=file_settings.get('backup_count', 5),
        colorize=(settings.get('console') or {}).get('colorize', True),
        stream=stream
    )
    try:
        return setup_logger(level=settings.get('level', "INFO"), **options)
    except ValueError as e:
        print(f"Warning: {e}, logging at INFO", file=sys.stderr)
        return setup_logger(level="INFO", **options)
