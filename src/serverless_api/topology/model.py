from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from serverless_api.domain.models import GatewayHandle, HandlerHandle, NetworkRef, PublishedEndpoint
from serverless_api.graph.builder import graph_for_topology
from serverless_api.graph.model import Graph


class BuildState(str, Enum):
    INIT = "init"
    HANDLER_READY = "handler_ready"
    GATEWAY_READY = "gateway_ready"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (BuildState.PUBLISHED, BuildState.FAILED)


@dataclass(frozen=True)
class Topology:
    """Resources created (or borrowed) for one EndpointSpec."""

    name: str
    handler: HandlerHandle
    handler_owned: bool  # False: caller keeps ownership
    gateway: GatewayHandle
    endpoint: PublishedEndpoint
    network: Optional[NetworkRef] = None

    def to_graph(self) -> Graph:
        return graph_for_topology(self)
