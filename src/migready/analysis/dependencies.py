"""Object dependency graph and data load order."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from migready.inventory.models import ObjectDescriptor

logger = logging.getLogger(__name__)

LOOKUP = "lookup"
MASTER_DETAIL = "master-detail"


@dataclass(frozen=True)
class GraphNode:
    name: str
    label: str


@dataclass(frozen=True)
class GraphEdge:
    """``source`` references ``target``; ``target`` must be loaded first."""

    source: str
    target: str
    type: str = LOOKUP


@dataclass(frozen=True)
class DependencyGraph:
    nodes: tuple[GraphNode, ...] = ()
    edges: tuple[GraphEdge, ...] = ()
    order: tuple[str, ...] = ()


def build_dependency_graph(objects: list[ObjectDescriptor] | tuple[ObjectDescriptor, ...]) -> DependencyGraph:
    """Graph of relationships between scanned objects, with a load order.

    Relationships to objects outside the scan are dropped.
    """
    names = {obj.name for obj in objects}
    edges = [
        GraphEdge(
            source=obj.name,
            target=lookup.target,
            type=MASTER_DETAIL if lookup.is_master_detail else LOOKUP,
        )
        for obj in objects
        for lookup in obj.lookups
        if lookup.target in names
    ]
    order = load_order([obj.name for obj in objects], edges)
    graph = DependencyGraph(
        nodes=tuple(GraphNode(name=obj.name, label=obj.label) for obj in objects),
        edges=tuple(edges),
        order=tuple(order),
    )
    logger.info(
        "Dependency graph built nodes=%d edges=%d order=%d",
        len(graph.nodes),
        len(graph.edges),
        len(graph.order),
    )
    return graph


def load_order(names: list[str], edges: list[GraphEdge]) -> list[str]:
    """Kahn topological sort placing referenced objects before referrers.

    Objects caught in a cycle are appended at the end in input order.
    """
    dependents: dict[str, list[str]] = {name: [] for name in names}
    pending: dict[str, int] = {name: 0 for name in names}
    seen: set[tuple[str, str]] = set()
    for edge in edges:
        # Self-references (e.g. parent accounts) do not constrain order
        if edge.source == edge.target or (edge.source, edge.target) in seen:
            continue
        seen.add((edge.source, edge.target))
        dependents[edge.target].append(edge.source)
        pending[edge.source] += 1

    queue = deque(name for name in names if pending[name] == 0)
    order: list[str] = []
    while queue:
        name = queue.popleft()
        order.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                queue.append(dependent)

    placed = set(order)
    order.extend(name for name in names if name not in placed)
    return order
