"""Logging setup for the translation API and the packages it runs."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

from common.config import settings
from common.utils import DateTimeUtils

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Packages whose module-level loggers write through the service's handlers
APPLICATION_PACKAGES = ("common", "downloader", "translator", "manager")

# Libraries that log every request or connection at INFO
NOISY_LOGGERS = ("openai", "httpx", "httpcore", "redis", "asyncio", "uvicorn.access")


def resolve_log_level(level: Optional[str] = None) -> int:
    """
    Numeric level for a level name, falling back to INFO.

    Example:
        >>> resolve_log_level("debug")
        10
    """
    return getattr(logging, (level or settings.log_level).upper(), logging.INFO)


def get_log_file_path(service_name: str, log_dir: str = "./logs") -> str:
    """Daily log file of a service, e.g. ./logs/manager_20250101.log."""
    date_string = DateTimeUtils.get_date_string_for_log_file()
    return str(Path(log_dir) / f"{service_name}_{date_string}.log")


def build_handlers(level: int, log_file: Optional[str] = None) -> List[logging.Handler]:
    """
    Create the stdout handler and, when a path is given, a file handler.

    The file handler uses the detailed format with source locations.

    Args:
        level: Numeric log level for every handler
        log_file: Optional file to append to; its directory is created

    Returns:
        Handlers ready to attach
    """
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    handlers: List[logging.Handler] = [console_handler]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def attach_handlers(
    name: str, handlers: List[logging.Handler], level: int
) -> logging.Logger:
    """
    Point a named logger at the given handlers only.

    Handlers from an earlier setup are dropped so repeated setup does not
    duplicate output. The logger stops propagating to the root logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def quiet_third_party_loggers(level: str = "WARNING") -> None:
    """Raise the level of chatty library loggers."""
    numeric_level = getattr(logging, level.upper(), logging.WARNING)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(numeric_level)


class ServiceLogger:
    """A service's own logger plus the application package loggers sharing its handlers."""

    def __init__(
        self,
        service_name: str,
        log_file: Optional[str] = None,
        log_level: Optional[str] = None,
    ):
        self.service_name = service_name
        self.log_file = log_file
        self.level = resolve_log_level(log_level)
        self.handlers = build_handlers(self.level, log_file)
        self.logger = attach_handlers(service_name, self.handlers, self.level)
        self.package_loggers = [
            attach_handlers(package, self.handlers, self.level)
            for package in APPLICATION_PACKAGES
            if package != service_name
        ]


def setup_service_logging(
    service_name: str,
    enable_file_logging: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> ServiceLogger:
    """
    Configure logging for a service process.

    Args:
        service_name: Logger name of the service (e.g. 'manager')
        enable_file_logging: Also write a daily log file; defaults to
            settings.log_to_file
        log_level: Level name override; defaults to settings.log_level

    Returns:
        ServiceLogger holding the configured loggers
    """
    quiet_third_party_loggers()

    if enable_file_logging is None:
        enable_file_logging = settings.log_to_file

    log_file = get_log_file_path(service_name) if enable_file_logging else None
    return ServiceLogger(service_name, log_file=log_file, log_level=log_level)
