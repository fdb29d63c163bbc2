from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from serverless_api.graph.model import Graph, GraphNode

if TYPE_CHECKING:
    from serverless_api.topology.model import Topology


@dataclass(frozen=True)
class GraphBuildResult:
    graph: Graph
    generated_at: int


def _handler_id(handler_id: str) -> str:
    return f"handler:{handler_id}"


def _gateway_id(gateway_id: str) -> str:
    return f"gateway:{gateway_id}"


def _network_id(network_id: str) -> str:
    return f"network:{network_id}"


def _output_id(gateway_id: str) -> str:
    # one published output per gateway
    return f"output:{gateway_id}"


def build_resource_graph(
    handler_rows: Iterable[dict],
    gateway_rows: Iterable[dict],
) -> GraphBuildResult:
    """
    Build a deterministic resource graph from state rows.

    Nodes:
      - handler: created handlers, plus borrowed ones seen only via a gateway
      - gateway
      - network: placement of a handler, when any
      - output: the gateway's published address

    Edges:
      - gateway -> handler (ROUTES_TO)
      - handler -> network (ATTACHED_TO)
      - gateway -> output (PUBLISHES)
    """
    g = Graph()
    now = int(time.time())

    for h in handler_rows:
        handler = GraphNode(id=_handler_id(str(h["id"])), type="handler", label=str(h.get("name") or h["id"]))
        g.add_node(handler)

        network_id = h.get("network_id")
        if network_id:
            network = GraphNode(id=_network_id(str(network_id)), type="network", label=str(network_id))
            g.link(handler, network, "ATTACHED_TO")

    for gw in gateway_rows:
        gateway = GraphNode(id=_gateway_id(str(gw["id"])), type="gateway", label=str(gw.get("name") or gw["id"]))
        # only used when the handler is not in handler_rows, i.e. borrowed from the caller
        handler = GraphNode(
            id=_handler_id(str(gw["handler_id"])), type="handler", label=f"{gw['handler_id']} (borrowed)"
        )
        g.link(gateway, handler, "ROUTES_TO")

        address = gw.get("address")
        if address:
            output = GraphNode(id=_output_id(str(gw["id"])), type="output", label=str(address))
            g.link(gateway, output, "PUBLISHES")

    g.sort()
    return GraphBuildResult(graph=g, generated_at=now)


def graph_for_topology(topology: Topology) -> Graph:
    handler_rows = []
    if topology.handler_owned:
        handler_rows.append(
            {
                "id": topology.handler.id,
                "name": topology.handler.name,
                "network_id": topology.network.id if topology.network else None,
            }
        )
    gateway_rows = [
        {
            "id": topology.gateway.id,
            "name": topology.gateway.name,
            "handler_id": topology.handler.id,
            "address": topology.endpoint.address,
        }
    ]
    return build_resource_graph(handler_rows, gateway_rows).graph
