#!/usr/bin/env python3
"""
Looking Glass Error Handling Utilities

Provides the exception hierarchy shared by the proxy and frontend tiers,
standardized error formatting, and parameter validation.

Error Format Standards:
- INFO: "✓ {message}"                    # Success messages
- WARNING: "⚠ {message}"                 # Warning messages
- ERROR: "✗ {message}"                   # Error messages
- FATAL: "✗ Fatal: {message}"            # Critical errors
- USAGE: "Usage: {usage_help}"           # Usage guidance
"""

import logging
import subprocess
from enum import Enum
from functools import wraps
from typing import Optional, Union


class ErrorSeverity:
    """Error severity levels for consistent classification"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"
    USAGE = "usage"


class LookingGlassError(Exception):
    """Base exception class for the looking glass with standardized error handling"""

    def __init__(self, message: str, severity: str = ErrorSeverity.ERROR,
                 guidance: Optional[str] = None, technical_details: Optional[str] = None):
        self.message = message
        self.severity = severity
        self.guidance = guidance
        self.technical_details = technical_details
        super().__init__(message)


class ValidationError(LookingGlassError):
    """Raised when parameter validation fails"""

    def __init__(self, message: str, parameter: str = None, guidance: str = None):
        self.parameter = parameter
        super().__init__(message, ErrorSeverity.ERROR, guidance)


class ConfigurationError(LookingGlassError):
    """Raised when configuration is invalid or missing"""
    pass


class LinkErrorKind(Enum):
    """Failure modes of a control-interface session"""

    CLOSED = "closed"
    TIMEOUT = "timeout"
    PROTOCOL_DESYNC = "protocol_desync"
    FORBIDDEN = "forbidden"


class LinkError(LookingGlassError):
    """Raised by ControlLink when a command cannot be completed"""

    def __init__(self, kind: LinkErrorKind, message: str,
                 technical_details: Optional[str] = None, before_reply: bool = False):
        self.kind = kind
        # True when the session died before the command produced any output
        self.before_reply = before_reply
        super().__init__(message, ErrorSeverity.ERROR,
                         technical_details=technical_details)


class ExecutionErrorKind(Enum):
    """Failure modes of gated subprocess execution"""

    SPAWN_FAILED = "spawn_failed"
    SLOT_TIMEOUT = "slot_timeout"
    PROCESS_TIMEOUT = "process_timeout"
    PROCESS_FAILED = "process_failed"
    UNSUPPORTED = "unsupported"


class ExecutionError(LookingGlassError):
    """Raised by ExecutionGate for traceroute job failures"""

    def __init__(self, kind: ExecutionErrorKind, message: str,
                 technical_details: Optional[str] = None):
        self.kind = kind
        super().__init__(message, ErrorSeverity.ERROR,
                         technical_details=technical_details)


class AuthErrorKind(Enum):
    """Admission denial reasons"""

    NOT_ALLOWED = "not_allowed"
    UNAUTHORIZED = "unauthorized"


class AuthError(LookingGlassError):
    """Raised when a request is denied by the AuthGate"""

    def __init__(self, kind: AuthErrorKind, message: str = "unauthorized"):
        self.kind = kind
        super().__init__(message, ErrorSeverity.ERROR)


class AggregationErrorKind(Enum):
    """Per-entry fan-out failures; never fatal to the aggregate"""

    UNKNOWN_SERVER = "unknown_server"
    PARTIAL_FAILURE = "partial_failure"


class GraphBuildError(LookingGlassError):
    """Per-node metadata degradation while building a bgpmap"""
    pass


class WhoisError(LookingGlassError):
    """Raised when a whois query cannot be completed"""
    pass


class ErrorFormatter:
    """Centralized error message formatting with consistent symbols and styles"""

    SYMBOLS = {
        ErrorSeverity.INFO: "✓",
        ErrorSeverity.WARNING: "⚠",
        ErrorSeverity.ERROR: "✗",
        ErrorSeverity.FATAL: "✗ Fatal:",
        ErrorSeverity.USAGE: "Usage:"
    }

    @classmethod
    def format_message(cls, message: str, severity: str = ErrorSeverity.ERROR,
                       guidance: Optional[str] = None) -> str:
        """Format a message with the appropriate symbol and structure"""
        symbol = cls.SYMBOLS.get(severity, "•")
        formatted = f"{symbol} {message}"

        if guidance:
            formatted += f"\n  Suggestion: {guidance}"

        return formatted

    @classmethod
    def format_error(cls, error: Union[Exception, LookingGlassError],
                     hide_technical: bool = True) -> str:
        """Format an exception with appropriate level of detail"""
        if isinstance(error, LookingGlassError):
            formatted = cls.format_message(error.message, error.severity, error.guidance)
            if not hide_technical and error.technical_details:
                formatted += f"\n  Technical: {error.technical_details}"
            return formatted

        error_type = type(error).__name__
        message = str(error)

        if isinstance(error, FileNotFoundError):
            guidance = "Check that the file path is correct and the file exists"
            return cls.format_message(f"File not found: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, PermissionError):
            guidance = "Check file permissions or run with appropriate privileges"
            return cls.format_message(f"Permission denied: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, subprocess.TimeoutExpired):
            guidance = "Check network connectivity or increase timeout value"
            return cls.format_message(f"Operation timed out: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, ValueError):
            guidance = "Verify input parameters and try again"
            return cls.format_message(f"Invalid input: {message}",
                                      ErrorSeverity.ERROR, guidance)
        elif isinstance(error, KeyboardInterrupt):
            return cls.format_message("Operation interrupted by user", ErrorSeverity.WARNING)
        else:
            if hide_technical:
                return cls.format_message("Unexpected error occurred", ErrorSeverity.ERROR,
                                          "Check logs for details or run with --verbose")
            return cls.format_message(f"Unexpected {error_type}: {message}",
                                      ErrorSeverity.ERROR)


class ParameterValidator:
    """Parameter validation with range checks and user guidance"""

    @staticmethod
    def validate_timeout(timeout: float, parameter_name: str = "timeout") -> float:
        """Validate timeout values with reasonable ranges"""
        if timeout <= 0:
            raise ValidationError(
                f"Timeout must be positive (>0 seconds), got {timeout}",
                parameter_name,
                "Use a positive number for timeout values (e.g., 30)"
            )

        if timeout > 3600:
            logger = logging.getLogger('bird-lg.validation')
            logger.warning(f"Very high timeout ({timeout}s) - this may cause long delays")

        return timeout

    @staticmethod
    def validate_port(port: int, parameter_name: str = "port") -> int:
        """Validate port numbers"""
        if not (1 <= port <= 65535):
            raise ValidationError(
                f"Port must be between 1-65535, got {port}",
                parameter_name,
                "Use a valid port number (e.g., 8000 for the proxy)"
            )
        return port

    @staticmethod
    def validate_positive_int(value: int, parameter_name: str) -> int:
        """Validate counters such as concurrency caps"""
        if not isinstance(value, int) or value < 1:
            raise ValidationError(
                f"{parameter_name} must be a positive integer, got {value!r}",
                parameter_name
            )
        return value


def handle_errors(logger_name: str = None, hide_technical: bool = True):
    """Decorator for standardized error handling in command functions"""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(logger_name or f'bird-lg.{func.__name__}')

            try:
                return func(*args, **kwargs)
            except LookingGlassError as e:
                logger.error(f"{e.severity.title()} in {func.__name__}: {e.message}")
                print(ErrorFormatter.format_error(e, hide_technical))

                if e.severity == ErrorSeverity.FATAL:
                    return 2
                elif e.severity == ErrorSeverity.ERROR:
                    return 1
                else:
                    return 0

            except KeyboardInterrupt:
                logger.info(f"Command {func.__name__} interrupted by user")
                print(ErrorFormatter.format_message("Operation interrupted by user",
                                                    ErrorSeverity.WARNING))
                return 130

            except Exception as e:
                logger.error(f"Unexpected error in {func.__name__}: {e}")
                print(ErrorFormatter.format_error(e, hide_technical))
                return 1

        return wrapper
    return decorator


__all__ = [
    'ErrorSeverity', 'LookingGlassError', 'ValidationError', 'ConfigurationError',
    'LinkErrorKind', 'LinkError', 'ExecutionErrorKind', 'ExecutionError',
    'AuthErrorKind', 'AuthError', 'AggregationErrorKind',
    'GraphBuildError', 'WhoisError', 'ErrorFormatter', 'ParameterValidator',
    'handle_errors'
]
