"""Progress-file lifecycle: ABSENT -> ACTIVE -> RESOLVED_{MERGED,DELETED}.

A progress file is written when a session is suspended and should be folded
into the module README before it is deleted. The filesystem is the only
state: transitions are inferred by comparing two snapshots passed in by the
caller, and nothing is remembered between calls.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from contextree.snapshot import Node, NodeKind, Snapshot
from contextree.violations import Violation, ViolationKind

log = logging.getLogger(__name__)

# Module statuses that exclude an active progress file
DONE_STATUSES = frozenset({"done", "complete", "completed"})


class ProgressState(str, Enum):
    ABSENT = "ABSENT"
    ACTIVE = "ACTIVE"
    RESOLVED_DELETED = "RESOLVED_DELETED"
    RESOLVED_MERGED = "RESOLVED_MERGED"


@dataclass(frozen=True)
class Transition:
    """Observed change of one module's progress state between two snapshots."""

    module_id: str
    before: ProgressState
    after: ProgressState
    legal: bool
    note: str


@dataclass
class ProgressReport:
    transitions: list[Transition] = field(default_factory=list)
    warnings: list[Violation] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings

    def __repr__(self) -> str:
        return f"ProgressReport({len(self.transitions)} transitions, {len(self.warnings)} warnings)"


def progress_state(snapshot: Snapshot, module_id: str) -> ProgressState:
    return ProgressState.ACTIVE if snapshot.progress(module_id) else ProgressState.ABSENT


def _readme_fingerprint(readme: Node | None) -> tuple | None:
    if readme is None:
        return None
    return readme.line_count, readme.size_bytes, readme.verified


def _progress_modules(snapshot: Snapshot) -> set[str]:
    return {n.module_id for n in snapshot.of_kind(NodeKind.PROGRESS) if n.module_id}


def check_progress_state(snapshot: Snapshot) -> list[Violation]:
    """Single-snapshot progress invariants.

    Reports progress files with no module README, more than one progress
    file per module, and progress files on a module whose README declares
    it done.
    """
    violations: list[Violation] = []
    progress_nodes = snapshot.of_kind(NodeKind.PROGRESS)
    counts = Counter(n.module_id for n in progress_nodes)

    reported: set[str] = set()
    for node in progress_nodes:
        module_id = node.module_id or ""
        readme = snapshot.module_readme(module_id)
        if counts[module_id] > 1 and module_id not in reported:
            reported.add(module_id)
            others = [n.path for n in progress_nodes if n.module_id == module_id]
            violations.append(Violation(
                ViolationKind.DUPLICATE_PROGRESS, node.path,
                f"module '{module_id}' has {counts[module_id]} progress files: {', '.join(others)}",
                module_id=module_id, paths=others,
            ))
        if readme is None:
            violations.append(Violation(
                ViolationKind.ORPHANED_PROGRESS, node.path,
                f"progress file has no README for module '{module_id}'",
                module_id=module_id,
            ))
        elif readme.status in DONE_STATUSES:
            violations.append(Violation(
                ViolationKind.PROGRESS_ON_DONE_MODULE, node.path,
                f"module '{module_id}' is marked '{readme.status}' in {readme.path} "
                "but still has a progress file",
                module_id=module_id, readme=readme.path,
            ))
    return violations


def audit_progress(previous: Snapshot, current: Snapshot) -> ProgressReport:
    """Classify every progress transition between ``previous`` and ``current``."""
    report = ProgressReport()

    for module_id in sorted(_progress_modules(previous) | _progress_modules(current)):
        before = progress_state(previous, module_id)
        after = progress_state(current, module_id)
        readme_before = previous.module_readme(module_id)
        readme_after = current.module_readme(module_id)

        if before is ProgressState.ABSENT:
            report.transitions.append(Transition(
                module_id, before, ProgressState.ACTIVE, True, "session suspended",
            ))
            log.info("%s: session suspended", module_id)
            continue

        if after is ProgressState.ABSENT:
            progress_path = previous.progress(module_id).path  # type: ignore[union-attr]
            merged = readme_after is not None and (
                _readme_fingerprint(readme_before) != _readme_fingerprint(readme_after)
            )
            if merged:
                report.transitions.append(Transition(
                    module_id, before, ProgressState.RESOLVED_MERGED, True,
                    "progress folded into README",
                ))
                log.info("%s: progress folded into README", module_id)
            else:
                reason = "did not change" if readme_after is not None else "is gone too"
                report.transitions.append(Transition(
                    module_id, before, ProgressState.RESOLVED_DELETED, False,
                    "progress deleted without a README update",
                ))
                report.warnings.append(Violation(
                    ViolationKind.LOST_PROGRESS, progress_path,
                    f"progress for module '{module_id}' was deleted but its README "
                    f"{reason}; the work state was likely discarded",
                    module_id=module_id,
                ))
                log.warning("%s: progress deleted without README update", module_id)
            continue

        progress_path = current.progress(module_id).path  # type: ignore[union-attr]
        if readme_after is None:
            report.transitions.append(Transition(
                module_id, before, after, False, "progress without a module README",
            ))
            report.warnings.append(Violation(
                ViolationKind.ORPHANED_PROGRESS, progress_path,
                f"progress file is still active but module '{module_id}' has no README",
                module_id=module_id,
            ))
        else:
            report.transitions.append(Transition(
                module_id, before, after, True, "still in progress",
            ))

    report.warnings.extend(
        v for v in check_progress_state(current)
        if v.kind is ViolationKind.PROGRESS_ON_DONE_MODULE
    )
    return report
