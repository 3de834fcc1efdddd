"""
AS-path graph model

Nodes are keyed by what they represent (`target:…`, `server:…`, `asn:…`) so
a server that happens to be named like an AS number never merges with it.
Repeated additions of the same node or edge merge into the existing one.
"""

from typing import Dict, List, Optional, Tuple

from bird_lg.models import NodeKind, PathGraphEdge, PathGraphNode

EDGE_FONT_SIZE = "12.0"
PREFERRED_COLOR = "red"


def target_key(target: str) -> str:
    return f"target:{target}"


def server_key(server: str) -> str:
    return f"server:{server}"


def asn_key(asn: int) -> str:
    return f"asn:{asn}"


def dot_quote(value: str) -> str:
    """Quote a DOT identifier or attribute value so raw text cannot escape it."""
    escaped = (value.replace("\\", "\\\\")
               .replace('"', '\\"')
               .replace("\n", "\\n")
               .replace("\r", "\\r")
               .replace("\t", "\\t"))
    return f'"{escaped}"'


def _dot_attrs(attrs: Dict[str, str]) -> str:
    if not attrs:
        return ""
    return " [" + ",".join(f"{key}={dot_quote(value)}" for key, value in attrs.items()) + "]"


class PathGraph:
    """Deduplicated AS-path graph for one target"""

    def __init__(self, target: str):
        self.target = target
        self.nodes: Dict[str, PathGraphNode] = {}
        self.edges: Dict[Tuple[str, str], PathGraphEdge] = {}
        # Backends that could not contribute, with the reason
        self.errors: Dict[str, str] = {}

        self.add_node(target_key(target), NodeKind.TARGET, label=target)

    def add_node(self, key: str, kind: NodeKind, label: Optional[str] = None,
                 asn: Optional[int] = None, preferred: bool = False) -> PathGraphNode:
        node = self.nodes.get(key)
        if node is None:
            node = PathGraphNode(key=key, kind=kind, label=label, asn=asn)
            self.nodes[key] = node
        elif label and not node.label:
            node.label = label
        node.preferred = node.preferred or preferred
        return node

    def add_edge(self, src: str, dst: str, label: Optional[str] = None,
                 prefix: Optional[str] = None, preferred: bool = False) -> PathGraphEdge:
        edge = self.edges.get((src, dst))
        if edge is None:
            edge = PathGraphEdge(src=src, dst=dst)
            self.edges[edge.key] = edge
        if label and label not in edge.labels:
            edge.labels.append(label)
        if prefix:
            edge.prefixes.add(prefix)
        edge.preferred = edge.preferred or preferred
        return edge

    def asns(self) -> List[int]:
        return [n.asn for n in self.nodes.values() if n.kind == NodeKind.ASN]

    def node(self, key: str) -> Optional[PathGraphNode]:
        return self.nodes.get(key)

    def edge(self, src: str, dst: str) -> Optional[PathGraphEdge]:
        return self.edges.get((src, dst))

    def to_dict(self) -> dict:
        return {
            'target': self.target,
            'nodes': [n.to_dict() for n in self.nodes.values()],
            'edges': [e.to_dict() for e in self.edges.values()],
            'errors': dict(self.errors),
        }

    def to_dot(self) -> str:
        lines = ["digraph {", "  rankdir=LR;", "  node [shape=box];"]

        for node in self.nodes.values():
            attrs = {"label": node.label or node.key}
            if node.kind == NodeKind.TARGET:
                attrs.update(color=PREFERRED_COLOR, shape="diamond")
            elif node.kind == NodeKind.SERVER:
                attrs.update(color="blue", shape="box")
            elif node.preferred:
                attrs["color"] = PREFERRED_COLOR
            lines.append(f"  {dot_quote(node.key)}{_dot_attrs(attrs)};")

        for edge in self.edges.values():
            attrs = {"fontsize": EDGE_FONT_SIZE}
            if edge.preferred:
                attrs["color"] = PREFERRED_COLOR
            if edge.labels:
                attrs["label"] = "\n".join(edge.labels)
            lines.append(f"  {dot_quote(edge.src)} -> {dot_quote(edge.dst)}{_dot_attrs(attrs)};")

        return "\n".join(lines) + "\n}\n"
