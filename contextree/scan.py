"""Filesystem scanner: walk a project once and classify its context files.

Classification is a mapping from glob pattern to :class:`NodeKind`, resolved
here once so the rest of the engine only ever sees typed nodes. Sibling
top-level directories are walked in parallel; every walk joins before the
:class:`Snapshot` is built, so no partial snapshot is ever exposed.
"""

from __future__ import annotations

import logging
import os
import posixpath
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Mapping

from contextree.config import classify_patterns, load_config
from contextree.parse import extract_links, parse_metadata
from contextree.snapshot import KNOWLEDGE_KINDS, Node, NodeKind, Snapshot

log = logging.getLogger(__name__)

# (st_dev, st_ino) chain from the root down to the current directory
_DirChain = tuple[tuple[int, int], ...]


class ScanError(Exception):
    """Fatal scan failure: missing/unreadable root or a symlink cycle."""

    def __init__(self, path: str | Path, cause: str) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = str(path)
        self.cause = cause


# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------


def match_pattern(rel_path: str, pattern: str) -> bool:
    """Match a slash-separated path against a glob; ``**`` spans any depth."""
    return _match_parts(rel_path.split("/"), pattern.split("/"))


def _match_parts(parts: list[str], pats: list[str]) -> bool:
    if not pats:
        return not parts
    head = pats[0]
    if head == "**":
        return any(_match_parts(parts[i:], pats[1:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_parts(parts[1:], pats[1:])


@dataclass(frozen=True)
class Classifier:
    """Resolves a project-relative path to a node kind and module ID."""

    knowledge_root: str
    patterns: Mapping[NodeKind, tuple[str, ...]]

    def classify(self, rel_path: str) -> tuple[NodeKind, str | None] | None:
        inner = _relative_to(rel_path, self.knowledge_root)
        if inner is not None:
            for kind in KNOWLEDGE_KINDS:
                if kind is not NodeKind.INDEX and "/" not in inner:
                    continue
                if self._matches(inner, kind):
                    module_id = None if kind is NodeKind.INDEX else inner.split("/", 1)[0]
                    return kind, module_id
        if self._matches(rel_path, NodeKind.RULE):
            return NodeKind.RULE, None
        return None

    def _matches(self, path: str, kind: NodeKind) -> bool:
        return any(match_pattern(path, p) for p in self.patterns.get(kind, ()))


def _relative_to(rel_path: str, prefix: str) -> str | None:
    prefix = posixpath.normpath(prefix)
    if prefix == ".":
        return rel_path
    if rel_path.startswith(prefix + "/"):
        return rel_path[len(prefix) + 1:]
    return None


# ------------------------------------------------------------------
# Walk
# ------------------------------------------------------------------


def _dir_key(path: Path) -> tuple[int, int]:
    try:
        st = os.stat(path)
    except OSError as exc:
        raise ScanError(path, exc.strerror or str(exc)) from exc
    return st.st_dev, st.st_ino


def _join(rel_dir: str, name: str) -> str:
    return name if rel_dir == "." else f"{rel_dir}/{name}"


def _list_dir(
    root: Path,
    rel_dir: str,
    chain: _DirChain,
    ignore: frozenset[str],
    follow_symlinks: bool,
) -> tuple[list[tuple[str, _DirChain]], list[str]]:
    """List one directory: (subdirectories with their chains, files)."""
    abs_dir = root if rel_dir == "." else root / rel_dir
    try:
        with os.scandir(abs_dir) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise ScanError(root if rel_dir == "." else rel_dir, exc.strerror or str(exc)) from exc

    subdirs: list[tuple[str, _DirChain]] = []
    files: list[str] = []
    for entry in entries:
        rel = _join(rel_dir, entry.name)
        try:
            is_dir = entry.is_dir(follow_symlinks=follow_symlinks)
            is_file = not is_dir and entry.is_file(follow_symlinks=True)
        except OSError as exc:
            raise ScanError(rel, exc.strerror or str(exc)) from exc

        if is_dir:
            if entry.name in ignore:
                continue
            key = _dir_key(Path(entry.path))
            if key in chain:
                raise ScanError(rel, "symlink cycle: directory is its own ancestor")
            subdirs.append((rel, chain + (key,)))
        elif is_file:
            files.append(rel)
    return subdirs, files


def _walk_subtree(
    root: Path,
    rel_dir: str,
    chain: _DirChain,
    ignore: frozenset[str],
    follow_symlinks: bool,
) -> tuple[list[str], list[str]]:
    dirs: list[str] = [rel_dir]
    files: list[str] = []
    stack = [(rel_dir, chain)]
    while stack:
        current, current_chain = stack.pop()
        subdirs, found = _list_dir(root, current, current_chain, ignore, follow_symlinks)
        files.extend(found)
        for sub in subdirs:
            dirs.append(sub[0])
            stack.append(sub)
    return dirs, files


def walk(
    root: Path,
    ignore: Iterable[str] = (),
    follow_symlinks: bool = True,
    workers: int = 1,
) -> tuple[list[str], list[str]]:
    """Walk ``root`` and return sorted (directories, files), both root-relative.

    Top-level subdirectories are walked concurrently when ``workers > 1``.
    The first failure in any subtree propagates as :class:`ScanError`.
    """
    ignored = frozenset(ignore)
    subdirs, files = _list_dir(root, ".", (_dir_key(root),), ignored, follow_symlinks)
    dirs = ["."]

    def run(item: tuple[str, _DirChain]) -> tuple[list[str], list[str]]:
        return _walk_subtree(root, item[0], item[1], ignored, follow_symlinks)

    if workers > 1 and len(subdirs) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(run, subdirs))
    else:
        results = [run(item) for item in subdirs]

    for sub_dirs, sub_files in results:
        dirs.extend(sub_dirs)
        files.extend(sub_files)
    return sorted(dirs), sorted(files)


# ------------------------------------------------------------------
# Scan
# ------------------------------------------------------------------


def count_lines(text: str) -> int:
    """Count newline-terminated lines; a final line without a newline still counts."""
    if not text:
        return 0
    return text.count("\n") + (0 if text.endswith("\n") else 1)


def _read_node(
    root: Path,
    rel_path: str,
    kind: NodeKind,
    module_id: str | None,
    link_sections: Iterable[str],
) -> Node:
    try:
        data = (root / rel_path).read_bytes()
    except OSError as exc:
        raise ScanError(rel_path, exc.strerror or str(exc)) from exc

    text = data.decode("utf-8", errors="replace")
    meta = parse_metadata(text)
    scope = None
    if kind is NodeKind.RULE:
        scope = posixpath.dirname(rel_path) or "."

    return Node(
        path=rel_path,
        kind=kind,
        line_count=count_lines(text),
        size_bytes=len(data),
        verified=meta.verified,
        status=meta.status,
        outbound_links=extract_links(text, link_sections),
        module_id=module_id,
        scope_directory=scope,
    )


def scan(root_path: str | Path, config: dict | None = None) -> Snapshot:
    """Walk ``root_path`` once and return an immutable :class:`Snapshot`.

    Parameters
    ----------
    root_path:
        Project root directory.
    config:
        Loaded config dict. Defaults to ``load_config(root_path)``.

    Raises
    ------
    ScanError
        When the root is missing or not a directory, a directory or
        classified file cannot be read, or a symlink cycle is found.
    """
    root = Path(root_path)
    if not root.exists():
        raise ScanError(root, "project root does not exist")
    if not root.is_dir():
        raise ScanError(root, "project root is not a directory")
    root = root.resolve()

    if config is None:
        config = load_config(root)

    scan_cfg = config["scan"]
    classifier = Classifier(
        knowledge_root=posixpath.normpath(config["knowledge_root"]),
        patterns=classify_patterns(config),
    )
    link_sections = config["links"]["sections"]

    dirs, files = walk(
        root,
        ignore=scan_cfg["ignore"],
        follow_symlinks=scan_cfg["follow_symlinks"],
        workers=scan_cfg["workers"],
    )

    nodes: list[Node] = []
    for rel_path in files:
        classified = classifier.classify(rel_path)
        if classified is None:
            continue
        kind, module_id = classified
        node = _read_node(root, rel_path, kind, module_id, link_sections)
        log.debug("Classified %s as %s", rel_path, kind.value)
        nodes.append(node)

    log.info(
        "Scanned %s: %d directories, %d files, %d classified",
        root, len(dirs), len(files), len(nodes),
    )

    return Snapshot(
        root=root.as_posix(),
        knowledge_root=classifier.knowledge_root,
        nodes=tuple(nodes),
        directories=tuple(dirs),
        taken_at=datetime.now(timezone.utc).replace(microsecond=0),
    )
