from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Literal


ResourceKind = Literal["handler", "gateway", "network", "output"]
Relation = Literal["ROUTES_TO", "ATTACHED_TO", "PUBLISHES"]


@dataclass(frozen=True)
class GraphNode:
    id: str  # "<kind>:<resource id>"
    type: ResourceKind
    label: str


@dataclass(frozen=True)
class GraphEdge:
    src: str
    dst: str
    type: Relation


@dataclass
class Graph:
    """Resources of one or more topologies and how they depend on each other."""

    nodes: dict[str, GraphNode] = field(default_factory=dict)
    edges: list[GraphEdge] = field(default_factory=list)

    def add_node(self, node: GraphNode) -> None:
        # first label wins: a handler seen in the store keeps its own name
        self.nodes.setdefault(node.id, node)

    def link(self, src: GraphNode, dst: GraphNode, relation: Relation) -> None:
        self.add_node(src)
        self.add_node(dst)
        edge = GraphEdge(src=src.id, dst=dst.id, type=relation)
        if edge not in self.edges:
            self.edges.append(edge)

    def of_type(self, kind: ResourceKind) -> Iterator[GraphNode]:
        return (n for n in self.nodes.values() if n.type == kind)

    def targets(self, node_id: str, relation: Relation) -> list[str]:
        return [e.dst for e in self.edges if e.src == node_id and e.type == relation]

    def sort(self) -> None:
        self.edges.sort(key=lambda e: (e.type, e.src, e.dst))
