"""Tests for contextree.progress: lifecycle transitions between snapshots."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextree.progress import (
    ProgressState,
    audit_progress,
    check_progress_state,
    progress_state,
)
from contextree.scan import scan
from contextree.violations import ViolationKind

from conftest import INDEX, lines

KB = "docs/knowledge"
README = f"{KB}/payments/README.md"
PROGRESS = f"{KB}/payments/_progress.md"


@pytest.fixture
def suspended(write_tree) -> Path:
    """payments has an 80-line README and an active progress file."""
    return write_tree({
        f"{KB}/README.md": INDEX,
        README: lines(80),
        PROGRESS: "# In flight\n- refund retries half done\n",
    })


class TestProgressState:
    def test_active_and_absent(self, suspended: Path) -> None:
        snapshot = scan(suspended)
        assert progress_state(snapshot, "payments") is ProgressState.ACTIVE
        assert progress_state(snapshot, "auth") is ProgressState.ABSENT


class TestAuditProgress:
    def test_merged_into_readme(self, suspended: Path) -> None:
        before = scan(suspended)
        (suspended / PROGRESS).unlink()
        (suspended / README).write_text(lines(95))
        report = audit_progress(before, scan(suspended))

        assert len(report.transitions) == 1
        t = report.transitions[0]
        assert (t.module_id, t.before, t.after) == (
            "payments", ProgressState.ACTIVE, ProgressState.RESOLVED_MERGED,
        )
        assert t.legal
        assert report.clean

    def test_deleted_without_readme_update(self, suspended: Path) -> None:
        before = scan(suspended)
        (suspended / PROGRESS).unlink()
        report = audit_progress(before, scan(suspended))

        assert report.transitions[0].after is ProgressState.RESOLVED_DELETED
        assert not report.transitions[0].legal
        assert [w.kind for w in report.warnings] == [ViolationKind.LOST_PROGRESS]
        assert report.warnings[0].path == PROGRESS

    def test_verified_date_bump_counts_as_update(self, suspended: Path) -> None:
        before = scan(suspended)
        (suspended / PROGRESS).unlink()
        (suspended / README).write_text(lines(80, verified="2026-10-17"))
        report = audit_progress(before, scan(suspended))
        assert report.transitions[0].after is ProgressState.RESOLVED_MERGED

    def test_readme_created_with_merge(self, write_tree) -> None:
        root = write_tree({f"{KB}/README.md": INDEX, PROGRESS: "wip\n"})
        before = scan(root)
        (root / PROGRESS).unlink()
        (root / README).write_text(lines(20))
        report = audit_progress(before, scan(root))
        assert report.transitions[0].after is ProgressState.RESOLVED_MERGED

    def test_readme_deleted_with_progress_is_lost(self, suspended: Path) -> None:
        before = scan(suspended)
        (suspended / PROGRESS).unlink()
        (suspended / README).unlink()
        report = audit_progress(before, scan(suspended))

        t = report.transitions[0]
        assert (t.before, t.after, t.legal) == (
            ProgressState.ACTIVE, ProgressState.RESOLVED_DELETED, False,
        )
        assert [w.kind for w in report.warnings] == [ViolationKind.LOST_PROGRESS]
        assert "is gone too" in report.warnings[0].message

    def test_session_suspended(self, write_tree) -> None:
        root = write_tree({f"{KB}/README.md": INDEX, README: lines(80)})
        before = scan(root)
        (root / PROGRESS).write_text("wip\n")
        report = audit_progress(before, scan(root))
        t = report.transitions[0]
        assert (t.before, t.after, t.note) == (
            ProgressState.ABSENT, ProgressState.ACTIVE, "session suspended",
        )
        assert report.clean

    def test_still_active(self, suspended: Path) -> None:
        snapshot = scan(suspended)
        report = audit_progress(snapshot, snapshot)
        assert report.transitions[0].after is ProgressState.ACTIVE
        assert report.transitions[0].note == "still in progress"
        assert report.clean

    def test_active_without_readme_warns(self, write_tree) -> None:
        root = write_tree({f"{KB}/README.md": INDEX, PROGRESS: "wip\n"})
        snapshot = scan(root)
        report = audit_progress(snapshot, snapshot)
        assert [w.kind for w in report.warnings] == [ViolationKind.ORPHANED_PROGRESS]

    def test_done_module_with_progress_warns(self, write_tree) -> None:
        root = write_tree({
            f"{KB}/README.md": INDEX,
            README: "Status: done\n",
            PROGRESS: "wip\n",
        })
        snapshot = scan(root)
        report = audit_progress(snapshot, snapshot)
        assert [w.kind for w in report.warnings] == [ViolationKind.PROGRESS_ON_DONE_MODULE]

    def test_no_progress_files_is_empty(self, project: Path) -> None:
        snapshot = scan(project)
        report = audit_progress(snapshot, snapshot)
        assert report.transitions == []
        assert report.clean

    def test_modules_in_sorted_order(self, write_tree) -> None:
        root = write_tree({
            f"{KB}/README.md": INDEX,
            f"{KB}/zeta/README.md": "z\n",
            f"{KB}/zeta/_progress.md": "wip\n",
            f"{KB}/alpha/README.md": "a\n",
            f"{KB}/alpha/_progress.md": "wip\n",
        })
        snapshot = scan(root)
        report = audit_progress(snapshot, snapshot)
        assert [t.module_id for t in report.transitions] == ["alpha", "zeta"]


class TestCheckProgressState:
    def test_orphaned_progress(self, write_tree) -> None:
        root = write_tree({f"{KB}/README.md": INDEX, f"{KB}/ledger/_progress.md": "wip\n"})
        violations = check_progress_state(scan(root))
        assert [v.kind for v in violations] == [ViolationKind.ORPHANED_PROGRESS]
        assert violations[0].data["module_id"] == "ledger"

    def test_done_statuses(self, write_tree) -> None:
        root = write_tree({
            f"{KB}/README.md": INDEX,
            README: "---\nstatus: Completed\n---\n# Payments\n",
            PROGRESS: "wip\n",
        })
        violations = check_progress_state(scan(root))
        assert [v.kind for v in violations] == [ViolationKind.PROGRESS_ON_DONE_MODULE]
        assert violations[0].data["readme"] == README

    def test_active_module_is_clean(self, suspended: Path) -> None:
        assert check_progress_state(scan(suspended)) == []
