"""
Tests for the proxy execution gate: per-link FIFO serialization and the
traceroute concurrency cap
"""

import threading
import time
import unittest
from unittest.mock import patch

from bird_lg.proxy.execution_gate import ExecutionGate, FifoLock
from bird_lg.proxy.traceroute import TracerouteConfig
from bird_lg.utils.config import ProxyConfig
from bird_lg.utils.error_handling import (ExecutionError, ExecutionErrorKind, LinkError,
                                          LinkErrorKind, ValidationError)
from bird_lg.utils.subprocess_manager import ProcessResult, ProcessState
from bird_lg.utils.timeout_config import Deadline
from tests.fake_bird import FakeBirdServer


def wait_until(predicate, timeout=5.0):
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class FakeProcessFactory:
    """Stands in for ManagedProcess; every process blocks until released"""

    def __init__(self, state=ProcessState.COMPLETED, stdout="", returncode=0,
                 spawn_error=None):
        self.state = state
        self.stdout = stdout
        self.returncode = returncode
        self.spawn_error = spawn_error
        self.release = threading.Event()
        self.commands = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, command, timeout=None, **kwargs):
        factory = self

        class _Process:
            def __enter__(self):
                if factory.spawn_error:
                    raise factory.spawn_error
                with factory._lock:
                    factory.commands.append(command)
                    factory.active += 1
                    factory.max_active = max(factory.max_active, factory.active)
                return self

            def __exit__(self, exc_type, exc_val, exc_tb):
                with factory._lock:
                    factory.active -= 1
                return False

            def wait_for_completion(self):
                factory.release.wait(5)
                return ProcessResult(
                    returncode=factory.returncode,
                    stdout=factory.stdout,
                    stderr="",
                    state=factory.state,
                    execution_time=0.01,
                    command=command,
                )

        return _Process()


class TestFifoLock(unittest.TestCase):
    """Ticket lock ordering"""

    def test_waiters_admitted_in_arrival_order(self):
        lock = FifoLock()
        order = []
        self.assertTrue(lock.acquire())

        def waiter(n):
            lock.acquire()
            order.append(n)
            lock.release()

        threads = []
        for n in range(1, 5):
            thread = threading.Thread(target=waiter, args=(n,))
            thread.start()
            threads.append(thread)
            self.assertTrue(wait_until(lambda: lock.waiting == n))

        lock.release()
        for thread in threads:
            thread.join(5)

        self.assertEqual(order, [1, 2, 3, 4])

    def test_timed_out_waiter_does_not_strand_followers(self):
        """An abandoned ticket is skipped on release"""
        lock = FifoLock()
        lock.acquire()

        self.assertFalse(lock.acquire(timeout=0.05))

        acquired = threading.Event()

        def follower():
            lock.acquire()
            acquired.set()
            lock.release()

        thread = threading.Thread(target=follower)
        thread.start()
        self.assertTrue(wait_until(lambda: lock.waiting == 1))

        lock.release()
        self.assertTrue(acquired.wait(5))
        thread.join(5)

    def test_hold_times_out_with_link_error(self):
        lock = FifoLock()
        lock.acquire()
        with self.assertRaises(LinkError) as ctx:
            with lock.hold(timeout=0.05):
                pass
        self.assertEqual(ctx.exception.kind, LinkErrorKind.TIMEOUT)


class TestExecutionGateCommands(unittest.TestCase):
    """Control link access through the gate"""

    def make_gate(self, path, **kwargs):
        config = ProxyConfig(bird_socket=path, **kwargs)
        return ExecutionGate(config, traceroute=None, autodetect=False)

    def test_concurrent_commands_never_interleave(self):
        """Each caller gets the reply to its own command"""
        with FakeBirdServer(delay=0.02) as server:
            gate = self.make_gate(server.path)
            results = {}

            def run(n):
                results[n] = gate.run_command(f"show route for 10.0.{n}.0/24")

            threads = [threading.Thread(target=run, args=(n,)) for n in range(8)]
            try:
                for thread in threads:
                    thread.start()
                for thread in threads:
                    thread.join(10)
            finally:
                gate.close()

        for n in range(8):
            self.assertEqual(results[n], f"echo: show route for 10.0.{n}.0/24\n")
        self.assertEqual(server.max_in_flight, 1)
        self.assertEqual(server.connections, 1)

    def test_forbidden_command_rejected_without_queueing(self):
        gate = self.make_gate("/nonexistent/bird.ctl")
        with self.assertRaises(LinkError) as ctx:
            gate.run_command("configure")
        self.assertEqual(ctx.exception.kind, LinkErrorKind.FORBIDDEN)
        self.assertEqual(gate.links["bird"].connects, 0)

    def test_lock_wait_bounded_by_deadline(self):
        """A caller queued behind a slow command gives up at its deadline"""
        with FakeBirdServer(delay=0.5) as server:
            gate = self.make_gate(server.path)
            first = threading.Thread(target=gate.run_command, args=("show route",))
            try:
                first.start()
                self.assertTrue(wait_until(lambda: server.in_flight == 1))
                with self.assertRaises(LinkError) as ctx:
                    gate.run_command("show status", deadline=Deadline(0.1))
                self.assertEqual(ctx.exception.kind, LinkErrorKind.TIMEOUT)
            finally:
                first.join(5)
                gate.close()

    def test_bird6_falls_back_to_bird_link(self):
        gate = self.make_gate("/nonexistent/bird.ctl")
        name, link = gate.link_for("bird6")
        self.assertEqual(name, "bird")
        self.assertIs(link, gate.links["bird"])

    def test_separate_bird6_link(self):
        gate = self.make_gate("/nonexistent/bird.ctl", bird6_socket="/nonexistent/bird6.ctl")
        name, link = gate.link_for("bird6")
        self.assertEqual(name, "bird6")
        self.assertEqual(link.socket_path, "/nonexistent/bird6.ctl")


class TestExecutionGateTraceroute(unittest.TestCase):
    """Traceroute slots and subprocess outcomes"""

    def make_gate(self, max_concurrent=2, traceroute=None):
        config = ProxyConfig(bird_socket="/nonexistent/bird.ctl",
                             traceroute_max_concurrent=max_concurrent)
        return ExecutionGate(config,
                             traceroute=traceroute or TracerouteConfig("traceroute", ["-q1", "-w1"]),
                             autodetect=False)

    def test_concurrency_cap(self):
        """At most K traceroutes run; the next one waits for a free slot"""
        factory = FakeProcessFactory(stdout=" 1  192.0.2.1  0.5 ms\n")
        gate = self.make_gate(max_concurrent=2)
        results = []

        def run():
            results.append(gate.run_traceroute("192.0.2.1", deadline=Deadline(10)))

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            threads = [threading.Thread(target=run) for _ in range(3)]
            for thread in threads:
                thread.start()

            self.assertTrue(wait_until(lambda: factory.active == 2))
            time.sleep(0.1)
            self.assertEqual(len(factory.commands), 2)

            factory.release.set()
            for thread in threads:
                thread.join(5)

        self.assertEqual(factory.max_active, 2)
        self.assertEqual(len(results), 3)
        self.assertEqual(factory.commands[0], ["traceroute", "-q1", "-w1", "192.0.2.1"])

    def test_slot_timeout(self):
        factory = FakeProcessFactory()
        gate = self.make_gate(max_concurrent=1)

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            holder = threading.Thread(target=gate.run_traceroute, args=("192.0.2.1",))
            holder.start()
            try:
                self.assertTrue(wait_until(lambda: factory.active == 1))
                with self.assertRaises(ExecutionError) as ctx:
                    gate.run_traceroute("192.0.2.2", deadline=Deadline(0.1))
                self.assertEqual(ctx.exception.kind, ExecutionErrorKind.SLOT_TIMEOUT)
            finally:
                factory.release.set()
                holder.join(5)

    def test_slot_released_after_failure(self):
        factory = FakeProcessFactory(state=ProcessState.FAILED, returncode=2)
        factory.release.set()
        gate = self.make_gate(max_concurrent=1)

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            for _ in range(2):
                with self.assertRaises(ExecutionError) as ctx:
                    gate.run_traceroute("192.0.2.1", deadline=Deadline(1))
                self.assertEqual(ctx.exception.kind, ExecutionErrorKind.PROCESS_FAILED)

    def test_process_timeout(self):
        factory = FakeProcessFactory(state=ProcessState.TIMEOUT, returncode=-9)
        factory.release.set()
        gate = self.make_gate()

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            with self.assertRaises(ExecutionError) as ctx:
                gate.run_traceroute("192.0.2.1", deadline=Deadline(1))
        self.assertEqual(ctx.exception.kind, ExecutionErrorKind.PROCESS_TIMEOUT)

    def test_spawn_failure(self):
        factory = FakeProcessFactory(spawn_error=FileNotFoundError("traceroute"))
        gate = self.make_gate()

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            with self.assertRaises(ExecutionError) as ctx:
                gate.run_traceroute("192.0.2.1", deadline=Deadline(1))
        self.assertEqual(ctx.exception.kind, ExecutionErrorKind.SPAWN_FAILED)

    def test_real_subprocess(self):
        """The configured binary receives its flags followed by the target"""
        gate = self.make_gate(traceroute=TracerouteConfig("echo", ["hop"]))
        self.assertEqual(gate.run_traceroute("192.0.2.1", deadline=Deadline(5)),
                         "hop 192.0.2.1")

    def test_missing_binary_is_spawn_failure(self):
        gate = self.make_gate(traceroute=TracerouteConfig("/nonexistent/traceroute"))
        with self.assertRaises(ExecutionError) as ctx:
            gate.run_traceroute("192.0.2.1", deadline=Deadline(5))
        self.assertEqual(ctx.exception.kind, ExecutionErrorKind.SPAWN_FAILED)

    def test_unsupported_without_tool(self):
        config = ProxyConfig(bird_socket="/nonexistent/bird.ctl")
        gate = ExecutionGate(config, traceroute=None, autodetect=False)
        with self.assertRaises(ExecutionError) as ctx:
            gate.run_traceroute("192.0.2.1")
        self.assertEqual(ctx.exception.kind, ExecutionErrorKind.UNSUPPORTED)

    def test_option_arguments_rejected(self):
        factory = FakeProcessFactory()
        gate = self.make_gate()
        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            with self.assertRaises(ValidationError):
                gate.run_traceroute("-f 192.0.2.1")
        self.assertEqual(factory.commands, [])

    def test_silent_hops_are_summarized(self):
        output = (
            "traceroute to 192.0.2.1 (192.0.2.1), 30 hops max\n"
            " 1  10.0.0.1  0.512 ms\n"
            " 2  *\n"
            " 3  *\n"
            " 4  192.0.2.1  3.201 ms\n"
        )
        factory = FakeProcessFactory(stdout=output)
        factory.release.set()
        gate = self.make_gate()

        with patch("bird_lg.proxy.execution_gate.ManagedProcess", factory):
            result = gate.run_traceroute("192.0.2.1", deadline=Deadline(1))
            raw = gate.run_traceroute("192.0.2.1", deadline=Deadline(1), raw=True)

        self.assertEqual(
            result,
            "traceroute to 192.0.2.1 (192.0.2.1), 30 hops max\n"
            " 1  10.0.0.1  0.512 ms\n"
            " 4  192.0.2.1  3.201 ms\n"
            "\n"
            "2 hops not responding."
        )
        self.assertEqual(raw, output)


if __name__ == '__main__':
    unittest.main()
