"""
Tests for multi-backend fan-out
"""

import threading
import time
import unittest

from bird_lg.frontend.fanout import FanoutAggregator
from bird_lg.frontend.proxy_client import ProxyRequestError, ProxyTimeout
from bird_lg.frontend.servers import ServerRegistry, parse_server_spec
from bird_lg.models import OutcomeStatus
from bird_lg.utils.error_handling import AggregationErrorKind
from bird_lg.utils.timeout_config import Deadline


class TestFanoutAggregator(unittest.TestCase):
    """Ordering, partial results and error mapping"""

    def setUp(self):
        backends = [parse_server_spec(name, "example.net") for name in ("gw1", "gw2", "gw3")]
        self.registry = ServerRegistry(backends, "example.net")
        self.aggregator = FanoutAggregator(self.registry, default_timeout=5)
        self.release = threading.Event()

    def tearDown(self):
        self.release.set()

    def test_results_follow_request_order(self):
        """gw3 answers first but is reported where it was requested"""
        delays = {"gw1": 0.2, "gw2": 0.1, "gw3": 0.0}

        def operation(backend, timeout):
            time.sleep(delays[backend.display_name])
            return f"{backend.display_name} ok"

        result = self.aggregator.fanout("gw1+gw2+gw3", operation, command="show status")

        self.assertEqual([e.display_name for e in result], ["gw1", "gw2", "gw3"])
        self.assertEqual([e.body for e in result], ["gw1 ok", "gw2 ok", "gw3 ok"])
        self.assertEqual(result.servers,
                         ["gw1.example.net", "gw2.example.net", "gw3.example.net"])
        self.assertFalse(result.partial)
        self.assertEqual(result.command, "show status")

    def test_slow_backend_times_out_alone(self):
        """The deadline abandons the hung backend and keeps the others"""
        def operation(backend, timeout):
            if backend.display_name == "gw2":
                self.release.wait(5)
                return "too late"
            return "fast"

        started = time.monotonic()
        result = self.aggregator.fanout("all", operation, Deadline(0.3))
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 2.0)
        self.assertEqual([e.status for e in result], [
            OutcomeStatus.SUCCESS, OutcomeStatus.TIMEOUT, OutcomeStatus.SUCCESS,
        ])
        self.assertTrue(result.partial)
        self.assertEqual(len(result.successful), 2)

    def test_every_backend_runs_in_parallel(self):
        """Twenty backends that each take 0.6s all answer within a 1.5s deadline"""
        names = [f"gw{n}" for n in range(20)]
        registry = ServerRegistry([parse_server_spec(name, "example.net") for name in names],
                                  "example.net")
        aggregator = FanoutAggregator(registry, default_timeout=5)

        def operation(backend, timeout):
            time.sleep(0.6)
            return "ok"

        result = aggregator.fanout("all", operation, Deadline(1.5))

        self.assertEqual(len(result), 20)
        self.assertEqual([e.display_name for e in result], names)
        self.assertFalse(result.partial)
        self.assertIsNone(result.failure_kind)

    def test_unknown_server_reported_in_place(self):
        result = self.aggregator.fanout("gw1+bogus", lambda backend, timeout: "ok")

        self.assertEqual(len(result), 2)
        unknown = result.get("bogus")
        self.assertEqual(unknown.status, OutcomeStatus.ERROR)
        self.assertEqual(unknown.error, "Unknown server: bogus")
        self.assertEqual(unknown.error_kind, AggregationErrorKind.UNKNOWN_SERVER)
        self.assertEqual(result.failure_kind, AggregationErrorKind.PARTIAL_FAILURE)
        self.assertTrue(result.get("gw1").ok)

    def test_error_mapping(self):
        def operation(backend, timeout):
            if backend.display_name == "gw1":
                raise ProxyTimeout("gw1 timed out", status_code=504)
            if backend.display_name == "gw2":
                raise ProxyRequestError("Error communicating with bird", status_code=500)
            raise RuntimeError("boom")

        result = self.aggregator.fanout("all", operation)

        self.assertEqual(result.get("gw1").status, OutcomeStatus.TIMEOUT)
        self.assertEqual(result.get("gw2").status, OutcomeStatus.ERROR)
        self.assertEqual(result.get("gw2").error, "Error communicating with bird")
        # unexpected exceptions do not leak their text
        self.assertEqual(result.get("gw3").error, "request failed")

    def test_operation_receives_remaining_budget(self):
        seen = []

        def operation(backend, timeout):
            seen.append(timeout)
            return "ok"

        self.aggregator.fanout("gw1", operation, Deadline(10))
        self.assertEqual(len(seen), 1)
        self.assertTrue(0 < seen[0] <= 10)

    def test_expired_deadline_skips_operation(self):
        called = []
        deadline = Deadline(0.01)
        time.sleep(0.05)

        result = self.aggregator.fanout("gw1", lambda b, t: called.append(b) or "ok", deadline)

        self.assertEqual(called, [])
        self.assertEqual(result.get("gw1").status, OutcomeStatus.TIMEOUT)

    def test_to_dict(self):
        result = self.aggregator.fanout("gw1+bogus", lambda backend, timeout: "ok")
        data = result.to_dict()

        self.assertEqual(data["servers"], ["gw1.example.net", "bogus"])
        self.assertTrue(data["partial"])
        self.assertEqual(data["results"][0]["status"], "success")
        self.assertEqual(data["results"][0]["result"], "ok")
        self.assertEqual(data["results"][1]["status"], "error")
        self.assertEqual(data["results"][1]["error_kind"], "unknown_server")
        self.assertIsNone(data["results"][0]["error_kind"])


if __name__ == '__main__':
    unittest.main()
