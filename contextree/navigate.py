"""Bounded, lazy navigation of the knowledge graph.

Navigation follows one reference at a time from the INDEX toward a target
module. Breadth-first order means a shallow file is always preferred over a
deeper one, and the result holds only the nodes the walk had to visit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from contextree.graph import KnowledgeGraph
from contextree.snapshot import Node, NodeKind

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Hop:
    """One BFS level: the nodes first discovered at ``depth``."""

    depth: int
    nodes: tuple[str, ...]
    parents: Mapping[str, str | None]


@dataclass(frozen=True)
class NavigationResult:
    """Outcome of :func:`navigate`.

    When ``found``, ``visited_path`` is the shortest chain from the start
    node to the target (``hops + 1`` nodes). Otherwise it is the chain to the
    last node the walk reached, so it never holds more than ``max_hops + 1``
    nodes; ``explored`` counts every node visited either way.
    """

    target: str
    found: bool
    visited_path: tuple[Node, ...]
    hops: int
    explored: int

    @property
    def paths(self) -> list[str]:
        return [n.path for n in self.visited_path]


def walk_frontiers(graph: KnowledgeGraph, start: str, max_hops: int) -> Iterator[Hop]:
    """Yield BFS levels from ``start`` out to ``max_hops``.

    A node is enqueued at most once, so cyclic links terminate. The caller
    may stop iterating at any hop boundary; nothing needs cleaning up.
    """
    if max_hops < 0:
        raise ValueError(f"max_hops must be >= 0, got {max_hops}")
    if start not in graph:
        return

    parents: dict[str, str | None] = {start: None}
    frontier = [start]
    depth = 0
    while True:
        yield Hop(depth, tuple(frontier), MappingProxyType(parents))
        if depth >= max_hops:
            return
        discovered: list[str] = []
        for path in frontier:
            for nxt in graph.neighbors(path):
                if nxt not in parents:
                    parents[nxt] = path
                    discovered.append(nxt)
        if not discovered:
            return
        frontier = discovered
        depth += 1


def _pick_target(graph: KnowledgeGraph, frontier: tuple[str, ...], target: str) -> str | None:
    matches = [p for p in frontier if graph.node(p).module_id == target]
    if not matches:
        return None
    for path in matches:
        if graph.node(path).kind is NodeKind.MODULE_README:
            return path
    return matches[0]


def _trace(parents: Mapping[str, str | None], end: str) -> list[str]:
    chain = [end]
    parent = parents[end]
    while parent is not None:
        chain.append(parent)
        parent = parents[parent]
    chain.reverse()
    return chain


def navigate(
    graph: KnowledgeGraph,
    start: str | None,
    target_module: str,
    max_hops: int,
) -> NavigationResult:
    """Search from ``start`` for the first node belonging to ``target_module``.

    ``start`` defaults to the graph's INDEX when None. A miss is a normal
    negative result (``found=False``), never an exception.
    """
    if max_hops < 0:
        raise ValueError(f"max_hops must be >= 0, got {max_hops}")
    if start is None:
        start = graph.root
    if start is None or start not in graph:
        log.warning("Navigation start %r is not a knowledge graph node", start)
        return NavigationResult(target_module, False, (), 0, 0)

    explored = 0
    last: Hop | None = None
    for hop in walk_frontiers(graph, start, max_hops):
        last = hop
        explored += len(hop.nodes)
        match = _pick_target(graph, hop.nodes, target_module)
        if match is not None:
            chain = _trace(hop.parents, match)
            log.debug("Found %s at %s after %d hop(s)", target_module, match, hop.depth)
            return NavigationResult(
                target_module, True, tuple(graph.node(p) for p in chain), hop.depth, explored,
            )

    chain = _trace(last.parents, last.nodes[-1]) if last else [start]
    log.debug("Module %s not found within %d hop(s)", target_module, max_hops)
    return NavigationResult(
        target_module, False, tuple(graph.node(p) for p in chain), len(chain) - 1, explored,
    )
