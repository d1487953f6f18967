"""Immutable snapshot of a project's context files.

A :class:`Snapshot` is produced once per invocation by
:func:`contextree.scan.scan` and shared by every query and audit. It can be
written to and read back from a YAML file so that the progress lifecycle
audit can compare two points in time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import yaml

SNAPSHOT_FORMAT = 1


class NodeKind(str, Enum):
    """Kind of a context file, resolved once at scan time."""

    RULE = "rule"
    INDEX = "index"
    MODULE_README = "module_readme"
    ARCHITECTURE = "architecture"
    PROGRESS = "progress"


# Match order below the knowledge root
KNOWLEDGE_KINDS = (
    NodeKind.INDEX,
    NodeKind.MODULE_README,
    NodeKind.ARCHITECTURE,
    NodeKind.PROGRESS,
)
MODULE_KINDS = frozenset({NodeKind.MODULE_README, NodeKind.ARCHITECTURE, NodeKind.PROGRESS})
GRAPH_KINDS = frozenset({NodeKind.INDEX, NodeKind.MODULE_README, NodeKind.ARCHITECTURE})


class SnapshotError(Exception):
    """Raised when a serialized snapshot cannot be read."""


@dataclass(frozen=True)
class Node:
    """A single classified file in either tree."""

    path: str
    kind: NodeKind
    line_count: int = 0
    size_bytes: int = 0
    verified: date | None = None
    status: str | None = None
    outbound_links: tuple[str, ...] = ()
    module_id: str | None = None
    scope_directory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind.value,
            "line_count": self.line_count,
            "size_bytes": self.size_bytes,
            "verified": self.verified.isoformat() if self.verified else None,
            "status": self.status,
            "outbound_links": list(self.outbound_links),
            "module_id": self.module_id,
            "scope_directory": self.scope_directory,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Node:
        try:
            verified = raw.get("verified")
            if isinstance(verified, str):
                verified = date.fromisoformat(verified)
            elif isinstance(verified, datetime):
                verified = verified.date()
            return cls(
                path=str(raw["path"]),
                kind=NodeKind(raw["kind"]),
                line_count=int(raw.get("line_count", 0)),
                size_bytes=int(raw.get("size_bytes", 0)),
                verified=verified,
                status=raw.get("status"),
                outbound_links=tuple(raw.get("outbound_links") or ()),
                module_id=raw.get("module_id"),
                scope_directory=raw.get("scope_directory"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Invalid node entry {dict(raw)!r}: {exc}") from exc


@dataclass(frozen=True)
class Snapshot:
    """Directory tree plus classified node metadata, taken at one instant.

    ``nodes`` is kept sorted by path. ``directories`` lists every walked
    directory relative to ``root``, with ``"."`` standing for the root itself.
    """

    root: str
    knowledge_root: str
    nodes: tuple[Node, ...] = ()
    directories: tuple[str, ...] = ()
    taken_at: datetime | None = None
    _by_path: Mapping[str, Node] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.nodes, key=lambda n: n.path))
        object.__setattr__(self, "nodes", ordered)
        object.__setattr__(self, "directories", tuple(sorted(self.directories)))
        object.__setattr__(self, "_by_path", MappingProxyType({n.path: n for n in ordered}))

    def __contains__(self, path: object) -> bool:
        return path in self._by_path

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, path: str) -> Node | None:
        return self._by_path.get(path)

    def of_kind(self, *kinds: NodeKind) -> tuple[Node, ...]:
        return tuple(n for n in self.nodes if n.kind in kinds)

    @property
    def rules(self) -> tuple[Node, ...]:
        return self.of_kind(NodeKind.RULE)

    @property
    def indexes(self) -> tuple[Node, ...]:
        return self.of_kind(NodeKind.INDEX)

    @property
    def index(self) -> Node | None:
        indexes = self.indexes
        return indexes[0] if indexes else None

    def module_readme(self, module_id: str) -> Node | None:
        for node in self.nodes:
            if node.kind is NodeKind.MODULE_README and node.module_id == module_id:
                return node
        return None

    def progress(self, module_id: str) -> Node | None:
        for node in self.nodes:
            if node.kind is NodeKind.PROGRESS and node.module_id == module_id:
                return node
        return None

    def modules(self) -> list[str]:
        """Module IDs that have any knowledge node, sorted."""
        return sorted({n.module_id for n in self.nodes if n.module_id})

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": SNAPSHOT_FORMAT,
            "root": self.root,
            "knowledge_root": self.knowledge_root,
            "taken_at": self.taken_at.isoformat() if self.taken_at else None,
            "directories": list(self.directories),
            "nodes": [n.to_dict() for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, raw: Any) -> Snapshot:
        if not isinstance(raw, dict):
            raise SnapshotError(f"Snapshot must be a mapping, got {type(raw).__name__}")
        fmt = raw.get("format")
        if fmt != SNAPSHOT_FORMAT:
            raise SnapshotError(f"Unsupported snapshot format {fmt!r} (expected {SNAPSHOT_FORMAT})")
        for key in ("root", "knowledge_root"):
            if not isinstance(raw.get(key), str):
                raise SnapshotError(f"Snapshot is missing '{key}'")

        taken_at = raw.get("taken_at")
        if isinstance(taken_at, str):
            try:
                taken_at = datetime.fromisoformat(taken_at)
            except ValueError as exc:
                raise SnapshotError(f"Invalid taken_at timestamp {taken_at!r}") from exc

        nodes = raw.get("nodes") or []
        if not isinstance(nodes, list):
            raise SnapshotError("'nodes' must be a list")

        return cls(
            root=raw["root"],
            knowledge_root=raw["knowledge_root"],
            nodes=tuple(Node.from_dict(n) for n in _mappings(nodes)),
            directories=tuple(str(d) for d in raw.get("directories") or ()),
            taken_at=taken_at if isinstance(taken_at, datetime) else None,
        )


def _mappings(items: Iterable[Any]) -> Iterable[Mapping[str, Any]]:
    for item in items:
        if not isinstance(item, dict):
            raise SnapshotError(f"Node entry must be a mapping, got {type(item).__name__}")
        yield item


def save_snapshot(snapshot: Snapshot, path: Path) -> None:
    """Write ``snapshot`` to ``path`` as YAML."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(snapshot.to_dict(), sort_keys=False))


def load_snapshot(path: Path) -> Snapshot:
    """Read a snapshot previously written by :func:`save_snapshot`."""
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text())
    except OSError as exc:
        raise SnapshotError(f"{path}: {exc.strerror or exc}") from exc
    except yaml.YAMLError as exc:
        raise SnapshotError(f"{path}: invalid YAML ({exc})") from exc
    return Snapshot.from_dict(raw)
