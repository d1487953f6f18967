"""Jinja2 rendering of the Markdown audit report."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from contextree.graph import KnowledgeGraph
from contextree.linter import audit
from contextree.progress import audit_progress
from contextree.snapshot import NodeKind, Snapshot

_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def _isodate(value: Any) -> str:
    """Jinja2 filter: ISO date or a dash for missing values."""
    if value is None:
        return "-"
    return value.isoformat()


def _get_env() -> Environment:
    """Create a Jinja2 environment loading from contextree/templates/."""
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["isodate"] = _isodate
    return env


def _module_rows(snapshot: Snapshot) -> list[dict[str, Any]]:
    rows = []
    for module_id in snapshot.modules():
        readme = snapshot.module_readme(module_id)
        rows.append({
            "id": module_id,
            "readme": readme,
            "architecture": any(
                n.module_id == module_id for n in snapshot.of_kind(NodeKind.ARCHITECTURE)
            ),
            "progress": snapshot.progress(module_id) is not None,
        })
    return rows


def render_report(
    snapshot: Snapshot,
    config: dict,
    now: date | datetime | None = None,
    previous: Snapshot | None = None,
) -> str:
    """Render the audit report for ``snapshot`` as Markdown.

    When ``previous`` is given the progress lifecycle section is included.
    """
    if now is None:
        now = datetime.now(timezone.utc).date()
    elif isinstance(now, datetime):
        now = now.date()

    graph = KnowledgeGraph(snapshot)
    result = audit(snapshot, config, now=now, graph=graph)
    progress = audit_progress(previous, snapshot) if previous is not None else None

    counts = {kind.value: len(snapshot.of_kind(kind)) for kind in NodeKind}
    template = _get_env().get_template("audit_report.md")
    return template.render(
        snapshot=snapshot,
        now=now,
        counts=counts,
        rules=snapshot.rules,
        modules=_module_rows(snapshot),
        result=result,
        grouped={kind.value: items for kind, items in result.by_kind().items()},
        progress=progress,
        staleness_days=config["staleness"]["days"],
    )
