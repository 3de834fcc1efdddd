"""Request admission: bearer token and caller allow-list"""

from bird_lg.auth.gate import (AuthDecision, AuthGate, caller_from_headers,
                               parse_caller, parse_networks)

__all__ = ['AuthDecision', 'AuthGate', 'caller_from_headers', 'parse_caller', 'parse_networks']
