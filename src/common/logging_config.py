"""Logging setup for pipeline processes."""

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

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("aio_pika", "aiormq", "openai", "httpx", "httpcore", "faster_whisper")

# Handlers added by setup_service_logging, replaced on the next call
_installed_handlers: List[logging.Handler] = []


def get_log_file_path(service_name: str, log_dir: str = "./logs") -> Path:
    """Daily log file for a service, e.g. ``logs/manager_20240101.log``."""
    date_string = DateTimeUtils.get_date_string_for_log_file()
    return Path(log_dir) / f"{service_name}_{date_string}.log"


def setup_service_logging(
    service_name: str,
    enable_file_logging: Optional[bool] = None,
    log_level: Optional[str] = None,
    log_dir: str = "./logs",
) -> logging.Logger:
    """
    Configure logging for a pipeline process.

    Modules log through ``logging.getLogger(__name__)``, so the handlers are
    attached to the root logger: one console stream and, when enabled, one
    log file per service and day. Calling this again swaps the handlers it
    installed before instead of stacking new ones.

    Args:
        service_name: Name of the service (e.g. 'manager')
        enable_file_logging: Write to a log file too. If None, uses
            settings.log_file_enabled
        log_level: Level override. If None, uses settings.log_level
        log_dir: Directory for log files

    Returns:
        The service's own logger
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    if enable_file_logging is None:
        enable_file_logging = settings.log_file_enabled

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    handlers: List[logging.Handler] = [console_handler]

    if enable_file_logging:
        log_path = get_log_file_path(service_name, log_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for handler in _installed_handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _installed_handlers[:] = handlers

    root_logger.setLevel(level)
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logging.getLogger(service_name)
