#!/usr/bin/env python3
"""
Centralized Logging Configuration for the looking glass

Provides standardized logging setup with:
- Console and file output
- Configurable log levels
- Structured log formatting
- Access/audit logging of admission decisions and executed commands
- systemd journal integration
"""

import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import Dict

from bird_lg.utils.config import get_config

AUDIT_LOGGER_NAME = "lg.audit"


class LookingGlassFormatter(logging.Formatter):
    """Custom formatter with optional console colours"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, include_module: bool = True):
        """
        Initialize formatter

        Args:
            use_colors: Use ANSI color codes for console output
            include_module: Include module name in log output
        """
        self.use_colors = use_colors and sys.stderr.isatty()
        self.include_module = include_module

        if include_module:
            format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        else:
            format_str = "%(asctime)s - %(levelname)s - %(message)s"

        super().__init__(fmt=format_str, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record):
        """Format log record with optional colors"""
        formatted = super().format(record)

        if hasattr(record, "duration"):
            formatted = f"{formatted} [took {record.duration:.3f}s]"

        if self.use_colors and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            formatted = f"{color}{formatted}{self.RESET}"

        return formatted


class AuditFormatter(logging.Formatter):
    """Plain one-line audit records: caller, action, resource, result"""

    def format(self, record):
        timestamp = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(record.created))
        caller = getattr(record, "caller", "unknown")
        resource = getattr(record, "resource", None)
        result = getattr(record, "result", "success")

        parts = [f"Caller: {caller}", f"Action: {record.getMessage()}"]
        if resource:
            parts.append(f"Resource: {resource}")
        parts.append(f"Result: {result}")

        return f"{timestamp} - AUDIT - {' | '.join(parts)}"


def setup_logging(
    config=None,
    level: str = None,
    log_to_file: bool = None,
    log_file: str = None,
    console_colors: bool = True,
    include_modules: bool = True,
) -> Dict[str, logging.Handler]:
    """
    Setup centralized logging

    Args:
        config: LookingGlassConfig instance (defaults to the global one)
        level: Log level override
        log_to_file: Enable file logging override
        log_file: Log file path override
        console_colors: Use colors in console output
        include_modules: Include module names in log format

    Returns:
        Dictionary of configured handlers
    """
    if config is None:
        config = get_config()

    logging_config = config.logging if hasattr(config, "logging") else None

    if level is None:
        level = logging_config.level if logging_config else "INFO"
    if log_to_file is None:
        log_to_file = logging_config.log_to_file if logging_config else False
    if log_file is None:
        log_file = logging_config.log_file if logging_config else None

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = {}

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        LookingGlassFormatter(use_colors=console_colors, include_module=include_modules)
    )
    root_logger.addHandler(console_handler)
    handlers["console"] = console_handler

    if log_to_file and log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(
            LookingGlassFormatter(use_colors=False, include_module=True)
        )
        root_logger.addHandler(file_handler)
        handlers["file"] = file_handler

    # systemd journal handler (if available and running as service)
    try:
        from systemd import journal

        if journal and _is_running_as_service():
            journal_handler = journal.JournalHandler()
            journal_handler.setLevel(numeric_level)
            journal_handler.setFormatter(
                LookingGlassFormatter(use_colors=False, include_module=True)
            )
            root_logger.addHandler(journal_handler)
            handlers["journal"] = journal_handler
    except ImportError:
        pass

    audit_file = logging_config.audit_log_file if logging_config else None
    handlers.update(setup_audit_logging(audit_file))

    logger = logging.getLogger("bird-lg.logging")
    logger.info(f"Logging configured: level={level}, handlers={list(handlers.keys())}")

    return handlers


def setup_audit_logging(audit_log_file: str = None) -> Dict[str, logging.Handler]:
    """Attach a plain-text handler to the audit logger when a file is configured"""
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.setLevel(logging.INFO)

    if not audit_log_file or audit_logger.handlers:
        return {}

    log_path = Path(audit_log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except (PermissionError, OSError) as e:
        logging.getLogger("bird-lg.logging").warning(
            f"Cannot create audit log directory {log_path.parent}: {e}"
        )
        return {}

    handler = logging.handlers.TimedRotatingFileHandler(
        log_path, when="midnight", interval=1, backupCount=90
    )
    handler.setFormatter(AuditFormatter())
    audit_logger.addHandler(handler)
    return {"audit": handler}


def audit_log(action: str, caller: str = None, **kwargs):
    """Record an audit event (admission decision or executed command)"""
    logging.getLogger(AUDIT_LOGGER_NAME).info(action, extra={"caller": caller, **kwargs})


def _is_running_as_service() -> bool:
    """Check if running as a systemd service"""
    return (
        os.getenv("INVOCATION_ID") is not None
        or os.getenv("JOURNAL_STREAM") is not None
    )


class LoggingTimer:
    """Context manager for timing operations with logging"""

    def __init__(
        self, logger: logging.Logger, operation: str, level: int = logging.INFO
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.log(self.level, f"Starting {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.log(
                self.level, f"Completed {self.operation} in {self.duration:.3f}s"
            )
        else:
            self.logger.error(
                f"Failed {self.operation} after {self.duration:.3f}s: {exc_val}"
            )

        return False  # Don't suppress exceptions
