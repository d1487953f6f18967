"""Line-budget and staleness checks.

Every node is held to the line ceiling configured for its kind and to the
staleness window. Pure and read-only: the same snapshot, config and ``now``
always give the same violations in the same order.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from contextree.config import budget_ceilings, staleness_kinds
from contextree.snapshot import Snapshot
from contextree.violations import Violation, over_budget, stale


def _today() -> date:
    return datetime.now(timezone.utc).date()


def validate(
    snapshot: Snapshot,
    config: dict,
    now: date | datetime | None = None,
) -> list[Violation]:
    """Check line ceilings and staleness for every node, in path order.

    Parameters
    ----------
    snapshot:
        Snapshot to audit.
    config:
        Loaded config dict; ``budget`` and ``staleness`` are used.
    now:
        Reference day for staleness. Defaults to today (UTC).
    """
    if now is None:
        now = _today()
    elif isinstance(now, datetime):
        now = now.date()

    ceilings = budget_ceilings(config)
    window = config["staleness"]["days"]
    stale_kinds = staleness_kinds(config)

    violations: list[Violation] = []
    for node in snapshot.nodes:
        ceiling = ceilings.get(node.kind)
        if ceiling is not None and node.line_count > ceiling:
            violations.append(over_budget(node.path, node.line_count, ceiling))

        if node.kind not in stale_kinds:
            continue
        if node.verified is None:
            violations.append(stale(node.path, None, None, window))
            continue
        age = (now - node.verified).days
        if age > window:
            violations.append(stale(node.path, node.verified, age, window))

    return violations
