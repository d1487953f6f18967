"""Scope resolution for auto-loaded rule files.

A rule file applies to its own directory and everything below it. For a
working path, every applicable rule is returned root first, most specific
last; later entries take precedence when rules conflict.
"""

from __future__ import annotations

import posixpath
from pathlib import PurePath, PurePosixPath

from contextree.snapshot import Node, Snapshot


class OutOfScopeError(Exception):
    """Raised when a queried path lies outside the project root."""

    def __init__(self, path: str, cause: str) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


def normalize_working_path(snapshot: Snapshot, working_path: str | PurePath) -> str:
    """Return ``working_path`` relative to the snapshot root, ``"."`` for the root.

    Pure string manipulation: the path need not exist.
    """
    raw = PurePath(working_path).as_posix()
    if PurePosixPath(raw).is_absolute():
        root = posixpath.normpath(snapshot.root)
        candidate = posixpath.normpath(raw)
        if candidate == root:
            return "."
        if not candidate.startswith(root.rstrip("/") + "/"):
            raise OutOfScopeError(str(working_path), f"outside project root {snapshot.root}")
        return candidate[len(root.rstrip("/")) + 1:]

    rel = posixpath.normpath(raw) if raw else "."
    if rel == ".." or rel.startswith("../"):
        raise OutOfScopeError(str(working_path), f"escapes project root {snapshot.root}")
    return rel


def _is_ancestor_or_self(scope: str, path: str) -> bool:
    if scope == ".":
        return True
    return path == scope or path.startswith(scope + "/")


def _depth(scope: str) -> int:
    return 0 if scope == "." else scope.count("/") + 1


def resolve_scope(snapshot: Snapshot, working_path: str | PurePath) -> tuple[Node, ...]:
    """Return the RULE nodes that apply at ``working_path``, root first.

    Raises
    ------
    OutOfScopeError
        When ``working_path`` lies outside the project root.
    """
    rel = normalize_working_path(snapshot, working_path)
    applicable = [
        node for node in snapshot.rules
        if _is_ancestor_or_self(node.scope_directory or ".", rel)
    ]
    applicable.sort(key=lambda n: (_depth(n.scope_directory or "."), n.path))
    return tuple(applicable)
