# pw_graph.py
from __future__ import annotations

from typing import Optional, Set

from models import RoutingEdge
from pw_cli import pw_link_connect, pw_link_disconnect
from pw_dump import dump_graph, link_edges
from reconcile import BoundaryFilter


class PipeWireLinkGraph:
    """
    Live link graph backed by pw-dump and pw-link. Holds no state: every
    current_edges() call takes a fresh snapshot.
    """

    def current_edges(self, edge_filter: Optional[BoundaryFilter] = None) -> Set[RoutingEdge]:
        edges = link_edges(dump_graph())
        if edge_filter is None:
            return edges
        return {e for e in edges if edge_filter.matches(e)}

    def add_edge(self, edge: RoutingEdge) -> None:
        pw_link_connect(edge.src, edge.dst)

    def remove_edge(self, edge: RoutingEdge) -> None:
        pw_link_disconnect(edge.src, edge.dst)
