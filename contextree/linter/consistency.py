"""Cross-reference consistency of the knowledge graph.

Detects dangling links, orphaned knowledge files, duplicate modules, rule
scope clashes, progress invariants and link cycles. Every check runs to
completion; nothing here raises on bad content.
"""

from __future__ import annotations

from collections import defaultdict

from contextree.graph import KnowledgeGraph
from contextree.progress import check_progress_state
from contextree.snapshot import NodeKind, Snapshot
from contextree.violations import Violation, ViolationKind


def check_index(snapshot: Snapshot) -> list[Violation]:
    """Exactly one INDEX must exist under the knowledge root."""
    indexes = snapshot.indexes
    if not indexes:
        return [Violation(
            ViolationKind.MISSING_INDEX, snapshot.knowledge_root,
            "knowledge root has no index file",
        )]
    if len(indexes) > 1:
        paths = [n.path for n in indexes]
        return [Violation(
            ViolationKind.DUPLICATE_INDEX, paths[1],
            f"knowledge root has {len(paths)} index files: {', '.join(paths)}",
            paths=paths,
        )]
    return []


def check_rule_scopes(snapshot: Snapshot) -> list[Violation]:
    """No two rule files may share a scope directory."""
    by_scope: dict[str, list[str]] = defaultdict(list)
    for node in snapshot.rules:
        by_scope[node.scope_directory or "."].append(node.path)

    violations: list[Violation] = []
    for scope in sorted(by_scope):
        paths = by_scope[scope]
        if len(paths) > 1:
            violations.append(Violation(
                ViolationKind.DUPLICATE_RULE, paths[1],
                f"scope '{scope}' has {len(paths)} rule files: {', '.join(paths)}",
                scope=scope, paths=paths,
            ))
    return violations


def check_dangling(graph: KnowledgeGraph) -> list[Violation]:
    violations: list[Violation] = []
    for dangling in graph.dangling_links:
        if dangling.resolved is None:
            reason = "escapes the project root"
        else:
            reason = f"{dangling.resolved} is not a knowledge node"
        violations.append(Violation(
            ViolationKind.DANGLING_LINK, dangling.source,
            f"link '{dangling.link}' does not resolve ({reason})",
            link=dangling.link, resolved=dangling.resolved,
        ))
    return violations


def check_orphans(graph: KnowledgeGraph) -> list[Violation]:
    """Module READMEs and architecture files unreachable from the INDEX."""
    reachable = graph.reachable_from(graph.root) if graph.root else set()
    violations: list[Violation] = []
    for path in graph:
        node = graph.node(path)
        if node.kind is NodeKind.INDEX or path in reachable:
            continue
        violations.append(Violation(
            ViolationKind.ORPHAN, path,
            "not reachable from the index",
            module_id=node.module_id,
        ))
    return violations


def check_duplicate_modules(snapshot: Snapshot) -> list[Violation]:
    by_module: dict[str, list[str]] = defaultdict(list)
    for node in snapshot.of_kind(NodeKind.MODULE_README):
        by_module[node.module_id or ""].append(node.path)

    violations: list[Violation] = []
    for module_id in sorted(by_module):
        paths = by_module[module_id]
        if len(paths) > 1:
            violations.append(Violation(
                ViolationKind.DUPLICATE_MODULE, paths[1],
                f"module '{module_id}' has {len(paths)} READMEs: {', '.join(paths)}",
                module_id=module_id, paths=paths,
            ))
    return violations


def find_cycles(graph: KnowledgeGraph) -> list[tuple[str, ...]]:
    """Return link cycles, each once, rotated to start at its smallest path.

    Iterative DFS; a cycle is recorded for every back edge found.
    """
    gray, black = 1, 2
    color: dict[str, int] = {}
    seen: set[tuple[str, ...]] = set()
    cycles: list[tuple[str, ...]] = []

    for start in sorted(graph):
        if start in color:
            continue
        color[start] = gray
        path = [start]
        stack = [iter(graph.neighbors(start))]
        while stack:
            advanced = False
            for nxt in stack[-1]:
                state = color.get(nxt)
                if state == gray:
                    loop = path[path.index(nxt):]
                    pivot = loop.index(min(loop))
                    canonical = tuple(loop[pivot:] + loop[:pivot])
                    if canonical not in seen:
                        seen.add(canonical)
                        cycles.append(canonical)
                elif state is None:
                    color[nxt] = gray
                    path.append(nxt)
                    stack.append(iter(graph.neighbors(nxt)))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                color[path.pop()] = black

    return cycles


def check_cycles(graph: KnowledgeGraph) -> list[Violation]:
    return [
        Violation(
            ViolationKind.CYCLE, cycle[0],
            "link cycle: " + " -> ".join(cycle + (cycle[0],)),
            cycle=list(cycle),
        )
        for cycle in find_cycles(graph)
    ]


def check(graph: KnowledgeGraph) -> list[Violation]:
    """Run every consistency check and return the full violation list."""
    snapshot = graph.snapshot
    violations: list[Violation] = []
    violations.extend(check_index(snapshot))
    violations.extend(check_rule_scopes(snapshot))
    violations.extend(check_dangling(graph))
    violations.extend(check_orphans(graph))
    violations.extend(check_duplicate_modules(snapshot))
    violations.extend(check_progress_state(snapshot))
    violations.extend(check_cycles(graph))
    return violations
