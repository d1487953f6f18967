"""Knowledge graph over the on-demand tree.

Nodes are the INDEX, MODULE_README and ARCHITECTURE files of a snapshot;
edges are their outbound links that resolve to another graph node. Links
are resolved once here, so navigation and consistency checks never touch
link text again.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator

from contextree.parse import resolve_link
from contextree.snapshot import GRAPH_KINDS, Node, Snapshot

__all__ = ["DanglingLink", "KnowledgeGraph", "resolve_link"]


@dataclass(frozen=True)
class DanglingLink:
    """A declared link with no matching node in the snapshot."""

    source: str
    link: str
    resolved: str | None


class KnowledgeGraph:
    """Read-only directed graph built once from a :class:`Snapshot`."""

    def __init__(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        nodes = {n.path: n for n in snapshot.of_kind(*GRAPH_KINDS)}
        edges: dict[str, tuple[str, ...]] = {}
        dangling: list[DanglingLink] = []

        for path, node in nodes.items():
            targets: list[str] = []
            for link in node.outbound_links:
                resolved = resolve_link(path, link)
                if resolved is None or resolved not in snapshot:
                    dangling.append(DanglingLink(path, link, resolved))
                elif resolved in nodes and resolved not in targets:
                    targets.append(resolved)
            edges[path] = tuple(targets)

        self._nodes = MappingProxyType(nodes)
        self._edges = MappingProxyType(edges)
        self._dangling = tuple(dangling)

    def __contains__(self, path: object) -> bool:
        return path in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    @property
    def root(self) -> str | None:
        """Path of the INDEX node, if the snapshot has one."""
        index = self.snapshot.index
        return index.path if index else None

    def node(self, path: str) -> Node:
        return self._nodes[path]

    def neighbors(self, path: str) -> tuple[str, ...]:
        return self._edges.get(path, ())

    @property
    def dangling_links(self) -> tuple[DanglingLink, ...]:
        return self._dangling

    def reachable_from(self, start: str) -> set[str]:
        """All nodes reachable from ``start``, including ``start`` itself."""
        if start not in self._nodes:
            return set()
        seen = {start}
        stack = [start]
        while stack:
            for nxt in self.neighbors(stack.pop()):
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return seen
