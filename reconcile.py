# reconcile.py
"""
Desired-vs-live diff of the virtual boundary links.

The reconciler reads the live edges that cross the virtual boundary, adds
what is missing, then removes what is no longer wanted. Adds always go first
so a channel that changes target is never left without a link.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, FrozenSet, List, Optional, Protocol, Set

from models import RoutingEdge


_LOGGER = logging.getLogger(__name__)


def port_node(port: str) -> str:
    # bluez_input.80:99:E7:43:87:E0:capture_MONO -> bluez_input.80:99:E7:43:87:E0
    node, sep, _ = port.rpartition(":")
    return node if sep else port


@dataclass(frozen=True)
class BoundaryFilter:
    """
    Selects edges leaving the virtual sink or entering the virtual mic.

    When `physical_ports` is non-empty the far end must be one of them, so
    application streams and monitoring taps attached to the virtual devices
    are never touched.
    """

    virtual_sink: str
    virtual_mic: str
    physical_ports: FrozenSet[str] = frozenset()

    def _far_end_ok(self, port: str) -> bool:
        return not self.physical_ports or port in self.physical_ports

    def matches(self, edge: RoutingEdge) -> bool:
        if port_node(edge.src) == self.virtual_sink and self._far_end_ok(edge.dst):
            return True
        if port_node(edge.dst) == self.virtual_mic and self._far_end_ok(edge.src):
            return True
        return False


class LinkGraph(Protocol):
    def current_edges(self, edge_filter: Optional[BoundaryFilter] = None) -> Set[RoutingEdge]: ...

    def add_edge(self, edge: RoutingEdge) -> None: ...

    def remove_edge(self, edge: RoutingEdge) -> None: ...


@dataclass
class ReconcileResult:
    added: List[RoutingEdge] = field(default_factory=list)
    removed: List[RoutingEdge] = field(default_factory=list)
    failed: List[RoutingEdge] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class Reconciler:
    def __init__(self, graph: LinkGraph, edge_filter: Optional[BoundaryFilter] = None) -> None:
        self._graph = graph
        self._filter = edge_filter

    def plan(self, desired: AbstractSet[RoutingEdge]) -> tuple[List[RoutingEdge], List[RoutingEdge]]:
        current = self._graph.current_edges(self._filter)
        to_add = sorted(set(desired) - current)
        to_remove = sorted(current - set(desired))
        return to_add, to_remove

    def reconcile(self, desired: AbstractSet[RoutingEdge]) -> ReconcileResult:
        result = ReconcileResult()
        to_add, to_remove = self.plan(desired)

        if not to_add and not to_remove:
            _LOGGER.info("Routing already matches (%d links)", len(desired))
            return result

        for e in to_add:
            _LOGGER.info("  link: %s", e)
            try:
                self._graph.add_edge(e)
            except RuntimeError as ex:
                _LOGGER.error("  link failed: %s (%s)", e, ex)
                result.failed.append(e)
                continue
            result.added.append(e)

        for e in to_remove:
            _LOGGER.info("  unlink: %s", e)
            try:
                self._graph.remove_edge(e)
            except RuntimeError as ex:
                _LOGGER.error("  unlink failed: %s (%s)", e, ex)
                result.failed.append(e)
                continue
            result.removed.append(e)

        return result
