# pw_dump.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Set

from models import AudioNode, RoutingEdge
from pw_cli import pw_dump_json


@dataclass(frozen=True)
class PwPort:
    id: int
    node_id: int
    full_name: str  # "node.name:port.name" or ""


@dataclass(frozen=True)
class PwLink:
    id: int
    out_port_id: int
    in_port_id: int


@dataclass
class PwGraph:
    nodes: Dict[int, AudioNode]
    ports: Dict[int, PwPort]
    links: List[PwLink]


def props_from_obj(obj: Dict[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for src in (obj.get("props") or {}, (obj.get("info") or {}).get("props") or {}):
        if not isinstance(src, dict):
            continue
        for k, v in src.items():
            out[str(k)] = "" if v is None else str(v)
    return out


def _int_or_none(v: Any) -> int | None:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def _objects_of(data: List[Any], suffix: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for obj in data:
        if not isinstance(obj, dict):
            continue
        if not str(obj.get("type") or "").endswith(suffix):
            continue
        if _int_or_none(obj.get("id")) is None:
            continue
        out.append(obj)
    return out


def graph_from_dump(data: List[Any]) -> PwGraph:
    nodes: Dict[int, AudioNode] = {}
    ports: Dict[int, PwPort] = {}
    links: List[PwLink] = []

    for obj in _objects_of(data, ":Node"):
        oid = int(obj["id"])
        pr = props_from_obj(obj)
        nodes[oid] = AudioNode(
            id=oid,
            name=pr.get("node.name", ""),
            description=pr.get("node.description") or pr.get("node.nick") or pr.get("node.name") or "",
            media_class=pr.get("media.class", ""),
            props=pr,
        )

    for obj in _objects_of(data, ":Port"):
        oid = int(obj["id"])
        pr = props_from_obj(obj)
        nid = _int_or_none(pr.get("node.id")) or 0
        n = nodes.get(nid)
        pname = pr.get("port.name", "")
        full = f"{n.name}:{pname}" if n and n.name and pname else ""

        ports[oid] = PwPort(
            id=oid,
            node_id=nid,
            full_name=full,
        )

    for obj in _objects_of(data, ":Link"):
        pr = props_from_obj(obj)
        info = obj.get("info") or {}
        out_i = _int_or_none(pr.get("link.output.port") or info.get("output-port-id"))
        in_i = _int_or_none(pr.get("link.input.port") or info.get("input-port-id"))
        if out_i is None or in_i is None:
            continue
        links.append(PwLink(id=int(obj["id"]), out_port_id=out_i, in_port_id=in_i))

    return PwGraph(nodes=nodes, ports=ports, links=links)


def link_edges(graph: PwGraph) -> Set[RoutingEdge]:
    out: Set[RoutingEdge] = set()
    for lk in graph.links:
        op = graph.ports.get(lk.out_port_id)
        ip = graph.ports.get(lk.in_port_id)
        if not op or not ip or not op.full_name or not ip.full_name:
            continue
        out.add(RoutingEdge(op.full_name, ip.full_name))
    return out


def dump_graph() -> PwGraph:
    return graph_from_dump(pw_dump_json())
