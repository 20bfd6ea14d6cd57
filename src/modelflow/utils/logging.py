"""
Logging configuration for Modelflow.

Console output goes through rich's RichHandler; an optional file handler writes
clean, parseable lines for post-run inspection.
"""

import logging
import sys
import threading
import traceback
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        result = super().format(record)
        if record.exc_info and not record.exc_text:
            result += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return result


class PlainFormatter(logging.Formatter):
    """'level: timestamp - msg', with file:line added for errors."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR and record.pathname:
            location = f"{Path(record.pathname).name}:{record.lineno}"
            return f"{record.levelname}: {self.formatTime(record)} - {location} - {record.getMessage()}"
        return f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_setup_lock = threading.Lock()


def _parse_level(level: str | int) -> int:
    """Parse logging level from string or int, defaulting to INFO."""
    if isinstance(level, int):
        return level
    if isinstance(level, str) and level.upper() in LEVEL_MAP:
        return LEVEL_MAP[level.upper()]
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
    file_mode: str = "a",
    console: Console | None = None,
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for Modelflow.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        format_string: Optional custom format string for the plain console handler
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite
        console: Optional Rich Console instance to log to (default: stderr)
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to use RichHandler for console output (default: True)

    Returns:
        The "modelflow" logger
    """
    logger = logging.getLogger("modelflow")
    level_int = _parse_level(level)

    with _setup_lock:
        # Only clear handlers from this logger, never root or child loggers
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(level_int)

        if console_enabled:
            if use_rich:
                logger.addHandler(
                    RichHandler(
                        level=level_int,
                        console=console or Console(stderr=True),
                        show_time=True,
                        show_path=False,
                        markup=False,
                        rich_tracebacks=True,
                        tracebacks_show_locals=False,
                        log_time_format="[%X]",
                        omit_repeated_times=False,
                    )
                )
            else:
                console_handler = logging.StreamHandler(sys.stderr)
                console_handler.setLevel(level_int)
                console_handler.setFormatter(logging.Formatter(format_string) if format_string else PlainFormatter())
                logger.addHandler(console_handler)

        if log_file:
            log_file = Path(log_file)
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode=file_mode)
            # File captures everything the logger lets through
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(FileFormatter())
            logger.addHandler(file_handler)

    return logger


def setup_logging_from_config(
    config: dict[str, Any], project_dir: Path | None = None, console: Console | None = None
) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of config.yaml.

    Recognized keys: level, file, file_enabled, file_mode, format,
    console_enabled, console_type ("rich" or "plain").
    """
    logging_config = config.get("logging") or {}

    level = logging_config.get("level", logging.INFO)
    file_mode = logging_config.get("file_mode", "a")
    format_string = logging_config.get("format")

    # File logging is opt-in
    log_file = None
    if logging_config.get("file_enabled", bool(logging_config.get("file"))):
        log_file = Path(logging_config.get("file") or "logs/modelflow.log")
        if project_dir and not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    console_type = logging_config.get("console_type", "rich")

    return setup_logging(
        level=level,
        log_file=log_file,
        format_string=format_string,
        file_mode=file_mode,
        console=console,
        console_enabled=console_enabled,
        use_rich=console_type == "rich",
    )


def get_logger(name: str = "modelflow") -> logging.Logger:
    """
    Get a logger instance.

    Child loggers ("modelflow.engine", ...) propagate to the "modelflow" logger
    configured by ``setup_logging``.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
