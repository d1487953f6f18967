"""CLI entry point for contextree."""

from __future__ import annotations

import logging
from pathlib import Path

import click


# Default config template
CONFIG_TEMPLATE = """\
# Directory holding the on-demand knowledge tree (index + one dir per module)
knowledge_root: docs/knowledge

# Glob patterns per node kind. rule patterns are relative to the project
# root, the others to knowledge_root. ** spans any number of directories.
classify:
  rule: ["**/CLAUDE.md"]
  index: [README.md]
  module_readme: ["*/README.md"]
  architecture: ["*/ARCHITECTURE.md"]
  progress: ["*/_progress.md"]

# Links are read only from these H2 sections ([] = whole document)
links:
  sections: [Modules, Related Modules, Related, See Also]

# Line ceilings per node kind (null = no ceiling)
budget:
  rule: 60
  index: 80
  module_readme: 120
  architecture: 200
  progress: null

staleness:
  days: 90
  kinds: [rule, index, module_readme, architecture]

navigate:
  max_hops: 4

scan:
  ignore: [.git, .hg, .svn, .contextree, node_modules, __pycache__, .venv]
  workers: 4
  follow_symlinks: true

watch:
  interval: 2.0
"""

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Exit codes beyond this are truncated by the OS
MAX_EXIT = 255


class EngineFailure(click.ClickException):
    """Fatal engine error (scan, config, scope, snapshot); exits with 2."""

    exit_code = 2


def _configure_logging(level: int) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    logging.getLogger().setLevel(level)


def _load(root: str, **overrides: object) -> tuple[dict, object]:
    """Load config for ``root`` (with overrides) and scan it."""
    from contextree.config import DEFAULTS, ConfigError, load_config, with_overrides
    from contextree.scan import ScanError, scan

    # A missing root still goes through scan() so it fails as a ScanError
    try:
        config = load_config(Path(root)) if Path(root).is_dir() else DEFAULTS
        config = with_overrides(config, **overrides)
    except ConfigError as exc:
        raise EngineFailure(f"Config error: {exc}") from exc
    try:
        snapshot = scan(root, config)
    except ScanError as exc:
        raise EngineFailure(f"Scan failed: {exc.path}: {exc.cause}") from exc
    return config, snapshot


def _require_same_project(previous, current) -> None:
    """Fail when a saved snapshot was taken of a different tree."""
    for key in ("root", "knowledge_root"):
        before, after = getattr(previous, key), getattr(current, key)
        if before != after:
            raise EngineFailure(
                f"Snapshot mismatch: previous {key} is {before}, current is {after}"
            )


def _echo_violations(violations: list, label: str) -> None:
    if not violations:
        click.echo(f"{label}: PASS (0 violations)")
        return
    click.echo(f"{label}: FAIL ({len(violations)} violations)")
    for v in violations:
        click.echo(f"  [{v.kind.value}] {v.path}: {v.message}")


def _exit_with_count(count: int) -> None:
    if count:
        raise SystemExit(min(count, MAX_EXIT))


def _date_option(name: str, help_text: str):
    return click.option(
        name,
        type=click.DateTime(formats=["%Y-%m-%d"]),
        default=None,
        help=help_text,
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """contextree: resolve and validate layered agent context trees."""
    _configure_logging(logging.DEBUG if verbose else logging.WARNING)


@cli.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
)
def init(root: str) -> None:
    """Write a default .contextree/config.yaml under ROOT."""
    from contextree.config import CONFIG_DIR, CONFIG_FILE, load_config

    config_dir = Path(root) / CONFIG_DIR
    config_path = config_dir / CONFIG_FILE
    if config_path.exists():
        click.echo(f"{config_path} already exists")
        raise SystemExit(1)

    config_dir.mkdir(parents=True, exist_ok=True)
    config_path.write_text(CONFIG_TEMPLATE)
    click.echo(f"Created {config_path}")

    # Load through the standard path to validate the template
    load_config(Path(root))


@cli.command("scan")
@click.argument("root", type=click.Path())
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Also write the snapshot to this YAML file.",
)
def scan_cmd(root: str, output: str | None) -> None:
    """Scan ROOT and print a snapshot summary."""
    from contextree.snapshot import NodeKind, save_snapshot

    _, snapshot = _load(root)

    index = snapshot.index
    modules = [m for m in snapshot.modules() if snapshot.module_readme(m)]
    click.echo(f"Scanned {snapshot.root}")
    click.echo(f"  Directories: {len(snapshot.directories)}")
    click.echo(f"  Rule files: {len(snapshot.rules)}")
    click.echo(f"  Index: {index.path if index else 'missing'}")
    click.echo(f"  Modules: {len(modules)}" + (f" ({', '.join(modules)})" if modules else ""))
    click.echo(f"  Architecture files: {len(snapshot.of_kind(NodeKind.ARCHITECTURE))}")
    click.echo(f"  Progress files: {len(snapshot.of_kind(NodeKind.PROGRESS))}")

    if output:
        save_snapshot(snapshot, Path(output))
        click.echo(f"Snapshot written: {output}")


@cli.command("resolve-scope")
@click.argument("root", type=click.Path())
@click.argument("working_path")
def resolve_scope_cmd(root: str, working_path: str) -> None:
    """Print the rule files that apply at WORKING_PATH, root first."""
    from contextree.scope import OutOfScopeError, resolve_scope

    _, snapshot = _load(root)
    try:
        rules = resolve_scope(snapshot, working_path)
    except OutOfScopeError as exc:
        raise EngineFailure(f"Out of scope: {exc.path}: {exc.cause}") from exc

    for node in rules:
        click.echo(node.path)


@cli.command("navigate")
@click.argument("root", type=click.Path())
@click.argument("target_module")
@click.option("--max-hops", type=click.IntRange(min=0), default=None, help="Hop budget (default: config).")
@click.option("--start", default=None, help="Start node path (default: the index).")
def navigate_cmd(root: str, target_module: str, max_hops: int | None, start: str | None) -> None:
    """Walk the knowledge graph from the index toward TARGET_MODULE."""
    from contextree.graph import KnowledgeGraph
    from contextree.navigate import navigate

    config, snapshot = _load(root, **{"navigate.max_hops": max_hops})
    hops = config["navigate"]["max_hops"]
    result = navigate(KnowledgeGraph(snapshot), start, target_module, hops)

    click.echo(f"Target: {target_module}")
    for depth, node in enumerate(result.visited_path):
        click.echo(f"  [{depth}] {node.path}")

    if result.found:
        click.echo(f"Found {target_module} in {result.hops} hop(s).")
        return
    click.echo(
        f"Not found: {target_module} "
        f"(visited {result.explored} node(s) within {hops} hop(s))"
    )
    raise SystemExit(1)


@cli.command("validate")
@click.argument("root", type=click.Path())
@click.option("--staleness-days", type=click.IntRange(min=0), default=None, help="Staleness window in days.")
@_date_option("--as-of", "Reference date for staleness (YYYY-MM-DD, default: today).")
def validate_cmd(root: str, staleness_days: int | None, as_of: object) -> None:
    """Check line budgets and staleness; exit code is the violation count."""
    from contextree.linter import validate

    config, snapshot = _load(root, **{"staleness.days": staleness_days})
    now = as_of.date() if as_of else None  # type: ignore[union-attr]
    violations = validate(snapshot, config, now=now)
    _echo_violations(violations, "Validate")
    _exit_with_count(len(violations))


@cli.command("check")
@click.argument("root", type=click.Path())
def check_cmd(root: str) -> None:
    """Check links, orphans, duplicates and cycles; exit code is the violation count."""
    from contextree.graph import KnowledgeGraph
    from contextree.linter import check

    _, snapshot = _load(root)
    violations = check(KnowledgeGraph(snapshot))
    _echo_violations(violations, "Check")
    _exit_with_count(len(violations))


@cli.command("progress-audit")
@click.argument("root", type=click.Path())
@click.option(
    "--previous",
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help="Snapshot file from an earlier 'scan --output'.",
)
@click.option(
    "--save",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the current snapshot here for the next audit.",
)
def progress_audit_cmd(root: str, previous: str, save: str | None) -> None:
    """Report progress-file transitions since the PREVIOUS snapshot."""
    from contextree.progress import audit_progress
    from contextree.snapshot import SnapshotError, load_snapshot, save_snapshot

    try:
        before = load_snapshot(Path(previous))
    except SnapshotError as exc:
        raise EngineFailure(f"Snapshot error: {exc}") from exc
    _, current = _load(root)
    _require_same_project(before, current)

    report = audit_progress(before, current)
    if report.transitions:
        click.echo(f"Progress transitions ({len(report.transitions)}):")
        for t in report.transitions:
            click.echo(f"  {t.module_id}: {t.before.value} -> {t.after.value} ({t.note})")
    else:
        click.echo("No progress transitions.")

    if report.warnings:
        click.echo(f"Warnings ({len(report.warnings)}):")
        for w in report.warnings:
            click.echo(f"  [{w.kind.value}] {w.path}: {w.message}")

    if save:
        save_snapshot(current, Path(save))
        click.echo(f"Snapshot written: {save}")

    _exit_with_count(len(report.warnings))


@cli.command("report")
@click.argument("root", type=click.Path())
@click.option(
    "--previous",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Snapshot file to include progress transitions against.",
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the report here instead of stdout.",
)
@_date_option("--as-of", "Reference date for staleness (YYYY-MM-DD, default: today).")
def report_cmd(root: str, previous: str | None, output: str | None, as_of: object) -> None:
    """Render a Markdown audit report for ROOT."""
    from contextree.report import render_report
    from contextree.snapshot import SnapshotError, load_snapshot

    before = None
    if previous:
        try:
            before = load_snapshot(Path(previous))
        except SnapshotError as exc:
            raise EngineFailure(f"Snapshot error: {exc}") from exc

    config, snapshot = _load(root)
    if before is not None:
        _require_same_project(before, snapshot)
    now = as_of.date() if as_of else None  # type: ignore[union-attr]
    text = render_report(snapshot, config, now=now, previous=before)

    if output:
        Path(output).write_text(text)
        click.echo(f"Report written: {output}")
    else:
        click.echo(text, nl=False)


@cli.command("watch")
@click.argument("root", type=click.Path())
@click.option("--interval", type=click.FloatRange(min=0, min_open=True), default=None, help="Poll interval in seconds.")
def watch_cmd(root: str, interval: float | None) -> None:
    """Rescan ROOT on change and print audit results as they change."""
    from contextree.linter import audit
    from contextree.progress import audit_progress
    from contextree.scan import ScanError
    from contextree.watch import TreeWatcher

    _configure_logging(logging.INFO)
    config, _ = _load(root, **{"watch.interval": interval})

    def on_audit(previous, current) -> None:
        result = audit(current, config)
        click.echo(f"Audit: {len(result.violations)} violation(s)")
        for kind, items in result.by_kind().items():
            click.echo(f"  {kind.value}: {len(items)}")
        for t in audit_progress(previous, current).transitions:
            if t.before is not t.after:
                click.echo(f"  {t.module_id}: {t.before.value} -> {t.after.value} ({t.note})")

    try:
        watcher = TreeWatcher(Path(root), config, on_audit)
    except ScanError as exc:
        raise EngineFailure(f"Scan failed: {exc.path}: {exc.cause}") from exc

    click.echo(f"Watching {watcher.snapshot.root} (Ctrl-C to stop)...")
    watcher.run(config["watch"]["interval"])
