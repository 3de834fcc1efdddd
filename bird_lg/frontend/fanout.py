"""
Multi-backend fan-out

Queries every resolved backend concurrently and reassembles the outcomes in
the order the servers were requested. A slow or broken backend only ever
affects its own entry: tasks still running at the deadline are abandoned and
reported as timeouts while their siblings' results are kept.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from bird_lg.frontend.proxy_client import ProxyTimeout
from bird_lg.frontend.servers import ServerRegistry
from bird_lg.models import AggregatedResult, Backend, BackendOutcome
from bird_lg.utils.error_handling import AggregationErrorKind, LookingGlassError
from bird_lg.utils.timeout_config import Deadline

logger = logging.getLogger(__name__)

# operation(backend, timeout_seconds) -> response body
Operation = Callable[[Backend, Optional[float]], str]


class FanoutAggregator:
    """Concurrent per-backend execution with a shared deadline"""

    def __init__(self, registry: ServerRegistry, default_timeout: float = 120.0):
        self.registry = registry
        self.default_timeout = default_timeout

    def fanout(self, server_pattern: str, operation: Operation,
               deadline: Optional[Deadline] = None,
               command: Optional[str] = None) -> AggregatedResult:
        """
        Run `operation` once per backend matched by `server_pattern`.

        Never raises for per-backend problems; unknown servers, errors and
        timeouts all become entries of the returned AggregatedResult.
        """
        if deadline is None:
            deadline = Deadline(self.default_timeout)

        resolutions = self.registry.resolve(server_pattern)
        outcomes: List[Optional[BackendOutcome]] = [None] * len(resolutions)

        pending = []
        for index, resolution in enumerate(resolutions):
            if resolution.known:
                pending.append((index, resolution.backend))
            else:
                outcomes[index] = BackendOutcome.failure(
                    resolution.name, resolution.name, f"Unknown server: {resolution.name}",
                    kind=AggregationErrorKind.UNKNOWN_SERVER)

        if pending:
            self._run_pending(pending, operation, deadline, outcomes)

        result = AggregatedResult(entries=outcomes, command=command)
        if result.partial:
            failed = [e.display_name for e in result if not e.ok]
            logger.info(f"{result.failure_kind.value}: {len(failed)} of {len(result)} backends "
                        f"failed: {', '.join(failed)}")
        return result

    def _run_pending(self, pending, operation: Operation, deadline: Deadline,
                     outcomes: List[Optional[BackendOutcome]]):
        # One worker per backend
        executor = ThreadPoolExecutor(
            max_workers=len(pending),
            thread_name_prefix="fanout",
        )
        try:
            futures = {
                executor.submit(self._run_one, backend, operation, deadline): (index, backend)
                for index, backend in pending
            }
            done, not_done = wait(futures, timeout=deadline.remaining())

            for future in done:
                index, _ = futures[future]
                outcomes[index] = future.result()

            for future in not_done:
                future.cancel()
                index, backend = futures[future]
                logger.warning(f"{backend.display_name} still running at deadline, abandoning")
                outcomes[index] = BackendOutcome.timeout(
                    backend.hostname, backend.display_name, deadline.elapsed())
        finally:
            # Abandoned tasks finish in the background and their results are dropped
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _run_one(backend: Backend, operation: Operation, deadline: Deadline) -> BackendOutcome:
        started = time.monotonic()
        if deadline.expired():
            return BackendOutcome.timeout(backend.hostname, backend.display_name)
        try:
            body = operation(backend, deadline.remaining())
        except ProxyTimeout:
            return BackendOutcome.timeout(backend.hostname, backend.display_name,
                                          time.monotonic() - started)
        except LookingGlassError as e:
            return BackendOutcome.failure(backend.hostname, backend.display_name,
                                          e.message, time.monotonic() - started)
        except Exception as e:
            logger.error(f"Unexpected error querying {backend.display_name}: {e}")
            return BackendOutcome.failure(backend.hostname, backend.display_name,
                                          "request failed", time.monotonic() - started)

        return BackendOutcome.success(backend.hostname, backend.display_name, body,
                                      time.monotonic() - started)
