"""
bird-lg - BGP looking glass for BIRD routers.

Two cooperating services:
- proxy: runs next to each router, bridges its BIRD control socket and
  traceroute to HTTP with admission control and bounded concurrency
- frontend: fans queries out to the proxy fleet and merges the answers,
  including AS-path graphs annotated with ASN metadata
"""

__version__ = "1.0.0"
__author__ = "bird-lg contributors"
