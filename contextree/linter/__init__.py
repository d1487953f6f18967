"""Whole-tree audits for the two context trees.

Main entry point: ``audit()`` runs the budget/staleness validator and the
consistency checker over one snapshot and returns an ``AuditResult``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from contextree.graph import KnowledgeGraph
from contextree.linter.budget import validate
from contextree.linter.consistency import check
from contextree.snapshot import Snapshot
from contextree.violations import Violation, ViolationKind

__all__ = ["AuditResult", "Violation", "ViolationKind", "audit", "check", "validate"]


@dataclass
class AuditResult:
    """Result of auditing one snapshot."""

    passed: bool
    violations: list[Violation] = field(default_factory=list)

    def __repr__(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"AuditResult({status}, {len(self.violations)} violations)"

    def by_kind(self) -> dict[ViolationKind, list[Violation]]:
        grouped: dict[ViolationKind, list[Violation]] = {}
        for v in self.violations:
            grouped.setdefault(v.kind, []).append(v)
        return grouped


def audit(
    snapshot: Snapshot,
    config: dict,
    now: date | datetime | None = None,
    graph: KnowledgeGraph | None = None,
) -> AuditResult:
    """Validate budgets and staleness, then check graph consistency."""
    if graph is None:
        graph = KnowledgeGraph(snapshot)
    violations = validate(snapshot, config, now=now)
    violations.extend(check(graph))
    return AuditResult(passed=len(violations) == 0, violations=violations)
