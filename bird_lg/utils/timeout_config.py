"""
Centralized timeout configuration and request deadlines

Every externally-triggered operation (proxy HTTP call, control-interface
exchange, traceroute subprocess, whois and DNS queries) is bound to a
deadline. Defaults live here and can be tuned through environment variables.
"""

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class TimeoutType(Enum):
    """Types of operations that can timeout"""

    CONTROL_LINK = "control_link"
    TRACEROUTE = "traceroute"
    PROXY_REQUEST = "proxy_request"
    WHOIS_QUERY = "whois_query"
    ASN_LOOKUP = "asn_lookup"


@dataclass
class TimeoutConfig:
    """Configuration for a specific timeout type"""

    default: float
    min_value: float
    max_value: float
    env_var: str
    description: str

    def get_value(self) -> float:
        """Get the configured timeout value from environment or default"""
        try:
            value = float(os.environ.get(self.env_var, self.default))
            if value < self.min_value:
                logging.warning(
                    f"Timeout {self.env_var}={value} below minimum "
                    f"{self.min_value}, using minimum"
                )
                return self.min_value
            if value > self.max_value:
                logging.warning(
                    f"Timeout {self.env_var}={value} above maximum "
                    f"{self.max_value}, using maximum"
                )
                return self.max_value
            return value
        except (ValueError, TypeError):
            logging.warning(
                f"Invalid timeout value for {self.env_var}, using "
                f"default {self.default}"
            )
            return self.default


class TimeoutManager:
    """Centralized timeout lookup"""

    _TIMEOUT_CONFIGS = {
        TimeoutType.CONTROL_LINK: TimeoutConfig(
            default=30.0,
            min_value=1.0,
            max_value=600.0,
            env_var="BIRDLG_CONTROL_TIMEOUT",
            description="Timeout for one control-interface exchange",
        ),
        TimeoutType.TRACEROUTE: TimeoutConfig(
            default=60.0,
            min_value=5.0,
            max_value=600.0,
            env_var="BIRDLG_TRACEROUTE_TIMEOUT",
            description="Timeout for a traceroute subprocess",
        ),
        TimeoutType.PROXY_REQUEST: TimeoutConfig(
            default=120.0,
            min_value=1.0,
            max_value=600.0,
            env_var="BIRDLG_PROXY_REQUEST_TIMEOUT",
            description="Timeout for a frontend to proxy HTTP request",
        ),
        TimeoutType.WHOIS_QUERY: TimeoutConfig(
            default=10.0,
            min_value=1.0,
            max_value=120.0,
            env_var="BIRDLG_WHOIS_TIMEOUT",
            description="Timeout for a whois TCP query",
        ),
        TimeoutType.ASN_LOOKUP: TimeoutConfig(
            default=5.0,
            min_value=0.5,
            max_value=60.0,
            env_var="BIRDLG_ASN_LOOKUP_TIMEOUT",
            description="Timeout for one ASN metadata lookup",
        ),
    }

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._cached_values: Dict[TimeoutType, float] = {}

    def get_timeout(self, timeout_type: TimeoutType) -> float:
        """
        Get timeout value for specified operation type

        Args:
            timeout_type: Type of operation needing timeout

        Returns:
            Timeout value in seconds
        """
        if timeout_type not in self._cached_values:
            config = self._TIMEOUT_CONFIGS.get(timeout_type)
            if not config:
                self.logger.warning(f"Unknown timeout type {timeout_type}, using default 30s")
                return 30.0

            self._cached_values[timeout_type] = config.get_value()
            self.logger.debug(
                f"Loaded timeout {timeout_type.value}: {self._cached_values[timeout_type]}s"
            )

        return self._cached_values[timeout_type]


class Deadline:
    """
    Absolute point in time after which an operation must give up.

    Built once per inbound request and passed down, so nested waits
    (lock acquisition, then socket reads) share one budget.
    """

    def __init__(self, seconds: Optional[float]):
        self.timeout = seconds
        self.started_at = time.monotonic()
        self.expires_at = None if seconds is None else self.started_at + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, 0.0 when expired, None when unbounded"""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def __repr__(self):
        return f"Deadline(timeout={self.timeout}, remaining={self.remaining()})"


# Global timeout manager instance
timeout_manager = TimeoutManager()


def get_timeout(timeout_type: TimeoutType) -> float:
    """Get timeout value for operation type"""
    return timeout_manager.get_timeout(timeout_type)
