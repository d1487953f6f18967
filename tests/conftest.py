"""Shared fixtures: small on-disk projects with both context trees."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

WriteTree = Callable[[dict[str, str]], Path]


def lines(n: int, verified: str | None = "2026-10-01") -> str:
    """A markdown body of exactly ``n`` lines, optionally with a verified date."""
    head = [f"Last verified: {verified}"] if verified else []
    body = head + [f"line {i}" for i in range(len(head), n)]
    return "\n".join(body) + "\n"


@pytest.fixture
def write_tree(tmp_path: Path) -> WriteTree:
    """Return a writer that creates ``{relative path: content}`` under tmp_path."""

    def _write(files: dict[str, str]) -> Path:
        for rel, content in files.items():
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return tmp_path

    return _write


INDEX = """\
# Knowledge Index

Last verified: 2026-10-01

## Modules
- [Payments](payments/README.md)
- [Auth](auth/README.md)
"""

PAYMENTS_README = """\
# Payments

Last verified: 2026-09-20
Status: active

Handles charges and refunds.

## Related Modules
- [Auth](../auth/README.md)
- [Internals](ARCHITECTURE.md)
"""

AUTH_README = """\
---
last_verified: 2026-09-15
status: done
---
# Auth

Sessions and tokens.
"""

PAYMENTS_ARCH = """\
# Payments architecture

**Last verified:** 2026-08-30

Ledger first, gateway second.
"""


@pytest.fixture
def project(write_tree: WriteTree) -> Path:
    """A clean project: nested rules plus an index, two modules and one architecture file."""
    return write_tree({
        "CLAUDE.md": lines(10),
        "a/CLAUDE.md": lines(10),
        "a/b/CLAUDE.md": lines(10),
        "a/x/CLAUDE.md": lines(10),
        "src/main.py": "print('not context')\n",
        "docs/knowledge/README.md": INDEX,
        "docs/knowledge/payments/README.md": PAYMENTS_README,
        "docs/knowledge/payments/ARCHITECTURE.md": PAYMENTS_ARCH,
        "docs/knowledge/auth/README.md": AUTH_README,
    })
