"""
Tests for server spec parsing and pattern resolution
"""

import unittest

from bird_lg.frontend.servers import ServerRegistry, parse_server_spec
from bird_lg.utils.config import FrontendConfig
from bird_lg.utils.error_handling import ConfigurationError


class TestParseServerSpec(unittest.TestCase):

    def test_short_name_gets_domain(self):
        backend = parse_server_spec("gw1", "example.net", 8000)
        self.assertEqual(backend.hostname, "gw1.example.net")
        self.assertEqual(backend.display_name, "gw1")
        self.assertEqual(backend.base_url, "http://gw1.example.net:8000")

    def test_display_name_override(self):
        backend = parse_server_spec("Frankfurt<gw2>", "example.net")
        self.assertEqual(backend.hostname, "gw2.example.net")
        self.assertEqual(backend.display_name, "Frankfurt")

    def test_fqdn_inside_domain_shows_short_name(self):
        backend = parse_server_spec("gw3.example.net", "example.net")
        self.assertEqual(backend.hostname, "gw3.example.net")
        self.assertEqual(backend.display_name, "gw3")

    def test_foreign_fqdn_and_ip_untouched(self):
        self.assertEqual(parse_server_spec("gw4.other.org", "example.net").hostname,
                         "gw4.other.org")
        backend = parse_server_spec("2001:db8::1", "example.net", 8080)
        self.assertEqual(backend.hostname, "2001:db8::1")
        self.assertEqual(backend.base_url, "http://[2001:db8::1]:8080")

    def test_no_domain(self):
        backend = parse_server_spec("gw1")
        self.assertEqual((backend.hostname, backend.display_name), ("gw1", "gw1"))

    def test_malformed(self):
        for spec in ("", "Frankfurt<gw2", "<gw2>", "Frankfurt<>"):
            with self.assertRaises(ConfigurationError, msg=spec):
                parse_server_spec(spec, "example.net")


class TestServerRegistry(unittest.TestCase):
    """Pattern resolution keeps request order"""

    def setUp(self):
        config = FrontendConfig()
        config.servers = ["gw1", "Frankfurt<gw2>", "gw3.example.net"]
        config.domain = "example.net"
        self.registry = ServerRegistry.from_config(config)

    def names(self, pattern):
        return [(r.name, r.backend.hostname if r.backend else None)
                for r in self.registry.resolve(pattern)]

    def test_all(self):
        self.assertEqual(self.names("all"), [
            ("gw1", "gw1.example.net"),
            ("Frankfurt", "gw2.example.net"),
            ("gw3", "gw3.example.net"),
        ])

    def test_request_order_and_separators(self):
        self.assertEqual(self.names("gw3+gw1"), [
            ("gw3", "gw3.example.net"),
            ("gw1", "gw1.example.net"),
        ])
        self.assertEqual(self.names("Frankfurt,gw1"), [
            ("Frankfurt", "gw2.example.net"),
            ("gw1", "gw1.example.net"),
        ])

    def test_lookup_by_hostname(self):
        self.assertEqual(self.names("gw2"), [("gw2", "gw2.example.net")])
        self.assertEqual(self.names("gw2.example.net"), [("gw2.example.net", "gw2.example.net")])

    def test_duplicates_queried_once(self):
        self.assertEqual(self.names("gw1+gw1.example.net+gw1"), [("gw1", "gw1.example.net")])

    def test_unknown_kept_in_place(self):
        resolved = self.registry.resolve("gw1+nope+gw3")
        self.assertEqual([r.name for r in resolved], ["gw1", "nope", "gw3"])
        self.assertEqual([r.known for r in resolved], [True, False, True])

    def test_empty_pattern(self):
        self.assertEqual(self.registry.resolve(""), [])
        self.assertEqual(self.registry.resolve("+,"), [])

    def test_display_names(self):
        self.assertEqual(self.registry.all_display_names(), ["gw1", "Frankfurt", "gw3"])
        self.assertEqual(self.registry.display_name("gw2.example.net"), "Frankfurt")
        self.assertEqual(self.registry.display_name("unknown.example.net"), "unknown.example.net")
        self.assertEqual(len(self.registry), 3)

    def test_duplicate_display_names_rejected(self):
        config = FrontendConfig()
        config.servers = ["gw1", "gw1<gw9>"]
        with self.assertRaises(ConfigurationError):
            ServerRegistry.from_config(config)


if __name__ == '__main__':
    unittest.main()
