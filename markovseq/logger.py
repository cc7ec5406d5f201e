"""
Logging infrastructure for markovseq.

Provides centralized logging configuration with console, rich console
and file output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

from .config import get_config

ROOT_LOGGER_NAME = 'markovseq'


class MarkovSeqLogger:
    """Centralized logger for the markovseq package."""

    def __init__(self):
        self._loggers = {}
        self._setup_root_logger()

    def _setup_root_logger(self):
        """Configure root logger with settings from config."""
        log_level = get_config('logging', 'level') or 'INFO'
        log_format = get_config('logging', 'format')
        file_logging = get_config('logging', 'file_logging') or False
        log_file = get_config('logging', 'log_file') or 'markovseq.log'
        rich_console = get_config('logging', 'rich_console') or False

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, log_level.upper()))

        root_logger.handlers.clear()

        formatter = logging.Formatter(log_format)

        if rich_console:
            console_handler = RichHandler(rich_tracebacks=True, show_path=False)
        else:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(formatter)
        console_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(console_handler)

        if file_logging:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(getattr(logging, log_level.upper()))
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        # Prevent propagation to avoid duplicate messages
        root_logger.propagate = False

    def get_logger(self, name: str) -> logging.Logger:
        """Get or create a logger with the specified name."""
        if name.startswith(ROOT_LOGGER_NAME):
            full_name = name
        else:
            full_name = f'{ROOT_LOGGER_NAME}.{name}'

        if full_name not in self._loggers:
            self._loggers[full_name] = logging.getLogger(full_name)

        return self._loggers[full_name]

    def set_level(self, level: str):
        """Set logging level for all loggers."""
        log_level = getattr(logging, level.upper())

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers:
            handler.setLevel(log_level)

    def enable_rich_logging(self):
        """Replace the plain console handler with a rich one."""
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)

        for handler in list(root_logger.handlers):
            if isinstance(handler, RichHandler):
                return
            if type(handler) is logging.StreamHandler:
                root_logger.removeHandler(handler)

        rich_handler = RichHandler(rich_tracebacks=True, show_path=False)
        rich_handler.setLevel(root_logger.level)
        root_logger.addHandler(rich_handler)

    def enable_file_logging(self, log_file: Optional[str] = None):
        """Enable file logging with optional custom log file path."""
        if log_file is None:
            log_file = get_config('logging', 'log_file') or 'markovseq.log'

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)

        for handler in root_logger.handlers:
            if isinstance(handler, logging.FileHandler):
                return  # File logging already enabled

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(root_logger.level)
        file_handler.setFormatter(logging.Formatter(get_config('logging', 'format')))

        root_logger.addHandler(file_handler)

    def disable_file_logging(self):
        """Disable file logging by removing file handlers."""
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)

        handlers_to_remove = [
            h for h in root_logger.handlers
            if isinstance(h, logging.FileHandler)
        ]

        for handler in handlers_to_remove:
            root_logger.removeHandler(handler)
            handler.close()


# Global logger manager instance
_logger_manager = MarkovSeqLogger()


def get_logger(name: str = 'main') -> logging.Logger:
    """Get a logger instance for the specified module/component."""
    return _logger_manager.get_logger(name)


def set_log_level(level: str):
    """Set global logging level."""
    _logger_manager.set_level(level)


def enable_rich_logging():
    """Route console logging through rich."""
    _logger_manager.enable_rich_logging()


def enable_file_logging(log_file: Optional[str] = None):
    """Enable file logging globally."""
    _logger_manager.enable_file_logging(log_file)


def disable_file_logging():
    """Disable file logging globally."""
    _logger_manager.disable_file_logging()
