"""Load and validate .contextree/config.yaml."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from contextree.snapshot import NodeKind


CONFIG_DIR = ".contextree"
CONFIG_FILE = "config.yaml"

# Default config values
DEFAULTS: dict[str, Any] = {
    "knowledge_root": "docs/knowledge",
    "classify": {
        # rule patterns are relative to the project root, the rest to knowledge_root
        "rule": ["**/CLAUDE.md"],
        "index": ["README.md"],
        "module_readme": ["*/README.md"],
        "architecture": ["*/ARCHITECTURE.md"],
        "progress": ["*/_progress.md"],
    },
    "links": {
        "sections": ["Modules", "Related Modules", "Related", "See Also"],
    },
    "budget": {
        "rule": 60,
        "index": 80,
        "module_readme": 120,
        "architecture": 200,
        "progress": None,
    },
    "staleness": {
        "days": 90,
        "kinds": ["rule", "index", "module_readme", "architecture"],
    },
    "navigate": {
        "max_hops": 4,
    },
    "scan": {
        "ignore": [".git", ".hg", ".svn", ".contextree", "node_modules", "__pycache__", ".venv"],
        "workers": 4,
        "follow_symlinks": True,
    },
    "watch": {
        "interval": 2.0,
    },
}

_KIND_NAMES = {k.value for k in NodeKind}


class ConfigError(Exception):
    """Raised when config is invalid."""


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) and v for v in value)


def _validate(config: dict) -> None:
    """Validate required fields in config."""
    root = config.get("knowledge_root")
    if not isinstance(root, str) or not root.strip():
        raise ConfigError("'knowledge_root' must be a non-empty string")
    parts = Path(root).parts
    if Path(root).is_absolute() or ".." in parts:
        raise ConfigError(f"'knowledge_root' must be a relative path inside the project, got '{root}'")

    classify = config.get("classify")
    if not isinstance(classify, dict):
        raise ConfigError("'classify' must be a mapping")
    unknown = set(classify) - _KIND_NAMES
    if unknown:
        raise ConfigError(f"'classify' has unknown node kinds: {sorted(unknown)}")
    for kind, patterns in classify.items():
        if not _string_list(patterns):
            raise ConfigError(f"'classify.{kind}' must be a list of glob patterns")

    sections = config.get("links", {}).get("sections")
    if not isinstance(sections, list) or not all(isinstance(s, str) for s in sections):
        raise ConfigError("'links.sections' must be a list of section titles")

    budget = config.get("budget")
    if not isinstance(budget, dict):
        raise ConfigError("'budget' must be a mapping")
    for kind, ceiling in budget.items():
        if kind not in _KIND_NAMES:
            raise ConfigError(f"'budget' has unknown node kind '{kind}'")
        if ceiling is not None and (not _is_int(ceiling) or ceiling < 0):
            raise ConfigError(f"'budget.{kind}' must be a non-negative integer or null")

    staleness = config.get("staleness")
    if not isinstance(staleness, dict):
        raise ConfigError("'staleness' must be a mapping")
    days = staleness.get("days")
    if not _is_int(days) or days < 0:
        raise ConfigError("'staleness.days' must be a non-negative integer")
    kinds = staleness.get("kinds")
    if not isinstance(kinds, list) or not set(kinds) <= _KIND_NAMES:
        raise ConfigError(f"'staleness.kinds' must list node kinds from {sorted(_KIND_NAMES)}")

    max_hops = config.get("navigate", {}).get("max_hops")
    if not _is_int(max_hops) or max_hops < 0:
        raise ConfigError("'navigate.max_hops' must be a non-negative integer")

    scan = config.get("scan")
    if not isinstance(scan, dict):
        raise ConfigError("'scan' must be a mapping")
    if not _string_list(scan.get("ignore")):
        raise ConfigError("'scan.ignore' must be a list of directory names")
    workers = scan.get("workers")
    if not _is_int(workers) or workers < 1:
        raise ConfigError("'scan.workers' must be a positive integer")
    if not isinstance(scan.get("follow_symlinks"), bool):
        raise ConfigError("'scan.follow_symlinks' must be true or false")

    interval = config.get("watch", {}).get("interval")
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigError("'watch.interval' must be a positive number of seconds")


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .contextree/config.yaml under project_root.

    Falls back to cwd if project_root is None. A missing file yields the
    defaults; a present one is merged over DEFAULTS so callers always get a
    full config dict.
    """
    root = Path(project_root) if project_root else Path.cwd()
    config_path = root / CONFIG_DIR / CONFIG_FILE

    if not config_path.exists():
        config = copy.deepcopy(DEFAULTS)
        _validate(config)
        return config

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config is not valid YAML: {config_path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(copy.deepcopy(DEFAULTS), raw)
    _validate(config)
    return config


def with_overrides(config: dict, **overrides: Any) -> dict:
    """Return a validated copy of config with dotted-key overrides applied.

    ``with_overrides(config, **{"staleness.days": 30})``; None values are skipped.
    """
    patch: dict[str, Any] = {}
    for dotted, value in overrides.items():
        if value is None:
            continue
        node = patch
        *parents, leaf = dotted.split(".")
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    merged = _deep_merge(config, patch)
    _validate(merged)
    return merged


def classify_patterns(config: dict) -> dict[NodeKind, tuple[str, ...]]:
    """Glob patterns per node kind."""
    return {NodeKind(kind): tuple(patterns) for kind, patterns in config["classify"].items()}


def budget_ceilings(config: dict) -> dict[NodeKind, int | None]:
    """Line ceiling per node kind; None means no ceiling."""
    return {NodeKind(kind): ceiling for kind, ceiling in config["budget"].items()}


def staleness_kinds(config: dict) -> frozenset[NodeKind]:
    return frozenset(NodeKind(kind) for kind in config["staleness"]["kinds"])
