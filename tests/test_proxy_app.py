"""
Tests for the proxy agent HTTP surface
"""

import os
import unittest
from unittest.mock import Mock, patch

from fastapi.testclient import TestClient

from bird_lg.auth import AuthGate
from bird_lg.proxy.execution_gate import ExecutionGate
from bird_lg.utils.config import AuthConfig, LookingGlassConfig
from bird_lg.utils.error_handling import (ExecutionError, ExecutionErrorKind, LinkError,
                                          LinkErrorKind, ValidationError)
from lgweb.proxy_app import create_app
from tests.asgi import with_peer
from tests.fake_bird import FakeBirdServer

ALLOWED = {"X-Forwarded-For": "192.0.2.10", "Authorization": "Bearer s3cret"}


@patch.dict(os.environ, {}, clear=True)
class TestProxyApp(unittest.TestCase):
    """Status codes and admission on the proxy endpoints"""

    def setUp(self):
        self.gate = Mock()
        auth = AuthConfig()
        auth.enabled = True
        auth.token = "s3cret"
        auth.trusted_proxies = ["127.0.0.0/8"]
        self.app = create_app(
            LookingGlassConfig(),
            gate=self.gate,
            auth_gate=AuthGate(auth, ["192.0.2.0/24"]),
        )
        # Requests arrive through a local reverse proxy
        self.client = TestClient(with_peer(self.app, "127.0.0.1"))

    def test_bird_command(self):
        self.gate.run_command.return_value = "BIRD 2.0.12\n"

        response = self.client.get("/bird", params={"q": "show status"}, headers=ALLOWED)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "BIRD 2.0.12\n")
        args, kwargs = self.gate.run_command.call_args
        self.assertEqual(args, ("show status",))
        self.assertEqual(kwargs["backend"], "bird")
        self.assertEqual(kwargs["caller"], "192.0.2.10")

    def test_bird6_uses_bird6_backend(self):
        self.gate.run_command.return_value = "ok\n"
        self.client.get("/bird6", params={"q": "show status"}, headers=ALLOWED)
        self.assertEqual(self.gate.run_command.call_args[1]["backend"], "bird6")

    def test_missing_token(self):
        response = self.client.get("/bird", params={"q": "show status"},
                                   headers={"X-Forwarded-For": "192.0.2.10"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "unauthorized"})
        self.gate.run_command.assert_not_called()

    def test_caller_outside_allow_list(self):
        headers = dict(ALLOWED, **{"X-Forwarded-For": "198.51.100.1, 192.0.2.10"})
        response = self.client.get("/bird", params={"q": "show status"}, headers=headers)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "unauthorized"})

    def test_real_ip_header(self):
        self.gate.run_command.return_value = "ok\n"
        headers = {"X-Real-IP": "192.0.2.20", "Authorization": "Bearer s3cret"}
        response = self.client.get("/bird", params={"q": "show status"}, headers=headers)
        self.assertEqual(response.status_code, 200)

    def test_forwarded_header_from_untrusted_peer(self):
        self.gate.run_command.return_value = "secret routes\n"
        direct = TestClient(with_peer(self.app, "198.51.100.1"))

        response = direct.get("/bird", params={"q": "show route"}, headers=ALLOWED)

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "unauthorized"})
        self.gate.run_command.assert_not_called()

    def test_forwarded_header_ignored_without_trusted_proxies(self):
        self.gate.run_command.return_value = "secret routes\n"
        auth = AuthConfig()
        auth.enabled = True
        auth.token = "s3cret"
        app = create_app(LookingGlassConfig(), gate=self.gate,
                         auth_gate=AuthGate(auth, ["10.0.0.0/8"]))
        client = TestClient(app)

        plain = client.get("/bird", params={"q": "show route"},
                           headers={"Authorization": "Bearer s3cret"})
        spoofed = client.get("/bird", params={"q": "show route"},
                             headers={"Authorization": "Bearer s3cret",
                                      "X-Forwarded-For": "10.1.2.3"})

        self.assertEqual(plain.status_code, 401)
        self.assertEqual(spoofed.status_code, 401)
        self.gate.run_command.assert_not_called()

    def test_missing_query(self):
        for params in ({}, {"q": "  "}):
            response = self.client.get("/bird", params=params, headers=ALLOWED)
            self.assertEqual(response.status_code, 400)
        self.gate.run_command.assert_not_called()

    def test_link_errors(self):
        cases = [
            (LinkError(LinkErrorKind.FORBIDDEN, "Command 'configure' is not allowed"), 403),
            (LinkError(LinkErrorKind.TIMEOUT, "Timed out waiting for reply from bird"), 504),
            (LinkError(LinkErrorKind.CLOSED, "bird closed the control session",
                       technical_details="/var/run/bird/bird.ctl"), 500),
            (LinkError(LinkErrorKind.PROTOCOL_DESYNC, "Malformed reply line"), 500),
        ]
        for error, status in cases:
            self.gate.run_command.side_effect = error
            response = self.client.get("/bird", params={"q": "show status"}, headers=ALLOWED)
            self.assertEqual(response.status_code, status, error.kind)

        forbidden = LinkError(LinkErrorKind.FORBIDDEN, "Command 'configure' is not allowed")
        self.gate.run_command.side_effect = forbidden
        response = self.client.get("/bird", params={"q": "configure"}, headers=ALLOWED)
        self.assertEqual(response.text, "Command 'configure' is not allowed\n")

    def test_internal_details_not_leaked(self):
        self.gate.run_command.side_effect = LinkError(
            LinkErrorKind.CLOSED, "Failed to connect", technical_details="/var/run/bird/bird.ctl")
        response = self.client.get("/bird", params={"q": "show status"}, headers=ALLOWED)
        self.assertEqual(response.text, "Error communicating with bird\n")

    def test_traceroute(self):
        self.gate.run_traceroute.return_value = "1  192.0.2.1  0.5 ms"

        response = self.client.get("/traceroute", params={"q": "192.0.2.1"}, headers=ALLOWED)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "1  192.0.2.1  0.5 ms")
        self.assertEqual(self.gate.run_traceroute.call_args[1]["backend"], "traceroute")

    def test_traceroute_errors(self):
        cases = [
            (ValidationError("Option arguments are not accepted: -f", "q"), 400),
            (ExecutionError(ExecutionErrorKind.SLOT_TIMEOUT, "Too many traceroutes"), 504),
            (ExecutionError(ExecutionErrorKind.PROCESS_TIMEOUT, "did not finish"), 504),
            (ExecutionError(ExecutionErrorKind.SPAWN_FAILED, "Error executing traceroute"), 500),
            (ExecutionError(ExecutionErrorKind.PROCESS_FAILED, "exit status 2"), 500),
            (ExecutionError(ExecutionErrorKind.UNSUPPORTED,
                            "Traceroute not supported on this node"), 500),
        ]
        for error, status in cases:
            self.gate.run_traceroute.side_effect = error
            response = self.client.get("/traceroute6", params={"q": "x"}, headers=ALLOWED)
            self.assertEqual(response.status_code, status, type(error).__name__)

        self.assertEqual(response.text, "Traceroute not supported on this node\n")

    def test_root_is_invalid(self):
        response = self.client.get("/", headers=ALLOWED)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.text, "Invalid Request\n")


@patch.dict(os.environ, {}, clear=True)
class TestProxyAppWithBird(unittest.TestCase):
    """Full path from HTTP to a fake BIRD control socket"""

    def test_end_to_end(self):
        with FakeBirdServer() as server:
            config = LookingGlassConfig()
            config.proxy.bird_socket = server.path
            gate = ExecutionGate(config.proxy, traceroute=None, autodetect=False)
            try:
                client = TestClient(create_app(config, gate=gate))
                ok = client.get("/bird", params={"q": "show protocols"})
                forbidden = client.get("/bird", params={"q": "down"})
                unsupported = client.get("/traceroute", params={"q": "192.0.2.1"})
            finally:
                gate.close()

        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.text, "echo: show protocols\n")
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(unsupported.status_code, 500)
        self.assertEqual(server.commands, ["show protocols"])


if __name__ == '__main__':
    unittest.main()
