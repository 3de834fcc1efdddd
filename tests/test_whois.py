"""
Tests for the whois client and its network-specific modes
"""

import socket
import threading
import unittest
from unittest.mock import patch

from bird_lg.utils.error_handling import ValidationError, WhoisError
from bird_lg.whois import WhoisClient, dn42_filter, dn42_rewrite, shorten

AUT_NUM = """\
% This is the dn42 whois query service.

aut-num:            AS4242421080
as-name:            EXAMPLE-AS
descr:              Example network
admin-c:            EXAMPLE-DN42
tech-c:             EXAMPLE-DN42
mnt-by:             EXAMPLE-MNT
source:             DN42
"""


class FakeWhoisServer:
    """Answers one query per connection with a fixed reply, then closes"""

    def __init__(self, reply: str):
        self.reply = reply
        self.queries = []
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(4)
        self.port = self.sock.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)

    def __enter__(self):
        self.thread.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.sock.close()

    def _serve(self):
        while True:
            try:
                conn, _ = self.sock.accept()
            except OSError:
                return
            with conn:
                data = b""
                while not data.endswith(b"\r\n"):
                    chunk = conn.recv(1024)
                    if not chunk:
                        break
                    data += chunk
                self.queries.append(data.decode())
                conn.sendall(self.reply.encode())


class TestWhoisClient(unittest.TestCase):

    def test_query_over_tcp(self):
        with FakeWhoisServer("domain: example.net\n") as server:
            client = WhoisClient("127.0.0.1", server.port, timeout=5)
            result = client.query(" example.net ")

        self.assertEqual(result, "domain: example.net\n")
        self.assertEqual(server.queries, ["example.net\r\n"])

    def test_dn42_mode_rewrites_and_filters(self):
        with FakeWhoisServer(AUT_NUM) as server:
            client = WhoisClient("127.0.0.1", server.port, timeout=5, net_specific_mode="dn42")
            result = client.query("1080")

        self.assertEqual(server.queries, ["AS4242421080\r\n"])
        self.assertNotIn("source:", result)
        self.assertNotIn("%", result)
        self.assertIn("as-name:            EXAMPLE-AS", result)

    def test_connection_refused(self):
        # Bind then close to get a port nothing listens on
        probe = socket.socket()
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
        probe.close()

        client = WhoisClient("127.0.0.1", port, timeout=2)
        with self.assertRaises(WhoisError):
            client.query("example.net")

    def test_invalid_targets(self):
        client = WhoisClient("127.0.0.1", 43, timeout=1)
        for target in ("", "   ", "example.net\r\nAS1"):
            with self.assertRaises(ValidationError):
                client.query(target)

    def test_unknown_mode(self):
        with self.assertRaises(ValidationError):
            WhoisClient(net_specific_mode="ripe")

    def test_shorten_mode(self):
        long_reply = "".join(f"line {n}\n" for n in range(30))
        client = WhoisClient("127.0.0.1", 43, timeout=1, net_specific_mode="shorten")
        with patch.object(client, "raw_query", return_value=long_reply) as raw_query:
            result = client.query("example.net")

        raw_query.assert_called_once_with("example.net")
        self.assertIn("line 19\n", result)
        self.assertNotIn("line 20\n", result)
        self.assertIn("10 line(s) skipped.", result)

    def test_dn42_shorten_mode_leaves_domains_alone(self):
        client = WhoisClient("127.0.0.1", 43, timeout=1, net_specific_mode="dn42_shorten")
        with patch.object(client, "raw_query", return_value="domain: example.dn42\n") as raw_query:
            result = client.query("example.dn42")

        raw_query.assert_called_once_with("example.dn42")
        self.assertEqual(result, "domain: example.dn42\n")


class TestWhoisHelpers(unittest.TestCase):

    def test_dn42_rewrite(self):
        self.assertEqual(dn42_rewrite("1080"), "AS4242421080")
        self.assertEqual(dn42_rewrite("as1080"), "AS4242421080")
        self.assertEqual(dn42_rewrite("4242421080"), "AS4242421080")
        self.assertEqual(dn42_rewrite("64500"), "AS64500")
        self.assertEqual(dn42_rewrite("172.20.0.0/14"), "172.20.0.0/14")

    def test_dn42_filter_without_key_attributes(self):
        self.assertEqual(dn42_filter("no match here\n"), "no match here\n")

    def test_shorten_short_text(self):
        self.assertEqual(shorten("a\nb\n"), "a\nb\n")


if __name__ == '__main__':
    unittest.main()
