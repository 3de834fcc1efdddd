"""
bird-lg web Pydantic Schemas
Response models for the frontend JSON API
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class BackendResult(BaseModel):
    """One backend's outcome inside a fan-out"""
    server: str
    display_name: str
    status: str = Field(..., description="success, timeout or error")
    result: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, description="unknown_server for unresolved names")
    duration: float = 0.0


class AggregatedResponse(BaseModel):
    """Per-backend results in requested server order"""
    servers: List[str]
    command: Optional[str] = None
    partial: bool = False
    results: List[BackendResult] = Field(default_factory=list)


class SummaryRowModel(BaseModel):
    name: str
    proto: str
    table: str
    state: str
    mapped_state: str
    since: str
    info: str


class ProtocolSummaryModel(BaseModel):
    server: str
    headers: List[str] = Field(default_factory=list)
    rows: List[SummaryRowModel] = Field(default_factory=list)


class SummaryResult(BackendResult):
    summary: Optional[ProtocolSummaryModel] = None


class SummaryResponse(AggregatedResponse):
    results: List[SummaryResult] = Field(default_factory=list)


class GraphNodeModel(BaseModel):
    id: str
    kind: str
    label: str
    asn: Optional[int] = None
    preferred: bool = False
    resolved: bool = False


class GraphEdgeModel(BaseModel):
    src: str
    dst: str
    prefixes: List[str] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    preferred: bool = False


class BgpmapResponse(BaseModel):
    """AS-path graph plus its Graphviz rendering"""
    target: str
    command: str
    nodes: List[GraphNodeModel] = Field(default_factory=list)
    edges: List[GraphEdgeModel] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)
    dot: str


class WhoisResponse(BaseModel):
    target: str
    result: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    servers: List[str] = Field(default_factory=list)
