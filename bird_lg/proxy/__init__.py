"""Proxy agent core: control socket bridge, execution gate and traceroute"""

from bird_lg.proxy.control_link import ControlLink
from bird_lg.proxy.execution_gate import ExecutionGate, FifoLock
from bird_lg.proxy.traceroute import TracerouteConfig

__all__ = ['ControlLink', 'ExecutionGate', 'FifoLock', 'TracerouteConfig']
