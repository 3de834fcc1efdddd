"""
HTTP client for proxy agents

Thin wrapper over a shared requests.Session. The bearer token, when enabled,
is attached once as a session header.
"""

import logging
from typing import Dict, Optional

import requests

from bird_lg.models import Backend
from bird_lg.utils.error_handling import ErrorSeverity, LookingGlassError

logger = logging.getLogger(__name__)


class ProxyRequestError(LookingGlassError):
    """The proxy could not be reached or answered with an error status"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 technical_details: Optional[str] = None):
        self.status_code = status_code
        super().__init__(message, ErrorSeverity.ERROR, technical_details=technical_details)


class ProxyTimeout(ProxyRequestError):
    """No answer from the proxy in time, or the proxy itself timed out (504)"""
    pass


class ProxyClient:
    """Issues `?q=` queries against proxy endpoints"""

    ENDPOINTS = ("bird", "bird6", "traceroute", "traceroute6")

    def __init__(self, headers: Optional[Dict[str, str]] = None,
                 timeout: float = 120.0,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        if headers:
            self.session.headers.update(headers)

    def query(self, backend: Backend, endpoint: str, q: str,
              timeout: Optional[float] = None) -> str:
        """
        GET {backend}/{endpoint}?q=...

        Returns:
            Response body text

        Raises:
            ProxyTimeout: request timed out or proxy answered 504
            ProxyRequestError: connection failure or any other non-2xx status
        """
        if endpoint not in self.ENDPOINTS:
            raise ValueError(f"Unknown proxy endpoint: {endpoint}")

        url = f"{backend.base_url}/{endpoint}"
        timeout = self.timeout if timeout is None else timeout

        try:
            response = self.session.get(url, params={"q": q}, timeout=timeout)
        except requests.Timeout as e:
            raise ProxyTimeout(f"{backend.display_name} did not respond in time",
                               technical_details=str(e))
        except requests.RequestException as e:
            logger.warning(f"Proxy request to {url} failed: {e}")
            raise ProxyRequestError(f"Cannot reach {backend.display_name}",
                                    technical_details=str(e))

        if response.status_code == 504:
            raise ProxyTimeout(f"{backend.display_name} timed out",
                               status_code=504, technical_details=response.text)
        if not response.ok:
            detail = response.text.strip() or f"HTTP error: {response.status_code}"
            raise ProxyRequestError(detail, status_code=response.status_code)

        return response.text

    def bird(self, backend: Backend, command: str, ipv6: bool = False,
             timeout: Optional[float] = None) -> str:
        return self.query(backend, "bird6" if ipv6 else "bird", command, timeout)

    def traceroute(self, backend: Backend, target: str, ipv6: bool = False,
                   timeout: Optional[float] = None) -> str:
        return self.query(backend, "traceroute6" if ipv6 else "traceroute", target, timeout)

    def close(self):
        self.session.close()
