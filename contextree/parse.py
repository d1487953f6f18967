"""Narrow Markdown extraction used by the scanner.

Only three things are read out of a file: the declared verification date,
the declared module status, and the outbound links listed under the link
sections. Everything else in the file is opaque to the engine.
"""

from __future__ import annotations

import logging
import posixpath
import re
from datetime import date, datetime
from typing import Iterable, NamedTuple, TypedDict

import yaml

log = logging.getLogger(__name__)


class Section(TypedDict):
    """A parsed H2 section from a markdown document."""
    heading: str
    title: str
    start: int
    end: int
    text: str


class Metadata(NamedTuple):
    verified: date | None
    status: str | None


FRONTMATTER_RE = re.compile(r'\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)', re.DOTALL)

# "Last verified: 2026-01-31", "**Last verified:** 2026-01-31", "- last_verified: ..."
VERIFIED_RE = re.compile(
    r'^\s*(?:[-*]\s+)?\*{0,2}last[ _-]verified\*{0,2}:\*{0,2}\s*(\d{4}-\d{2}-\d{2})',
    re.IGNORECASE | re.MULTILINE,
)
STATUS_RE = re.compile(
    r'^\s*(?:[-*]\s+)?\*{0,2}status\*{0,2}:\*{0,2}\s*`?([A-Za-z][\w-]*)',
    re.IGNORECASE | re.MULTILINE,
)

# Inline link, not an image: [text](target "title")
LINK_RE = re.compile(r'(?<!!)\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+"[^"]*")?\s*\)')
SCHEME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*:')


def parse_sections(content: str) -> list[Section]:
    """Parse a markdown doc into H2 sections.

    Text before the first H2 heading is preamble and is not returned.
    """
    sections: list[Section] = []
    lines = content.split("\n")
    current: dict | None = None

    for i, line in enumerate(lines):
        if line.startswith("## "):
            if current:
                current["end"] = i
                current["text"] = "\n".join(lines[current["start"]:i])
                sections.append(current)  # type: ignore[arg-type]
            current = {"heading": line, "title": _title(line), "start": i, "end": None}

    if current:
        current["end"] = len(lines)
        current["text"] = "\n".join(lines[current["start"]:])
        sections.append(current)  # type: ignore[arg-type]

    return sections


def _title(heading: str) -> str:
    return heading.lstrip("#").strip().rstrip(":").strip().lower()


def _frontmatter(content: str) -> dict:
    m = FRONTMATTER_RE.match(content)
    if not m:
        return {}
    try:
        data = yaml.safe_load(m.group(1))
    except yaml.YAMLError as exc:
        log.warning("Ignoring malformed front matter: %s", exc)
        return {}
    return data if isinstance(data, dict) else {}


def _as_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def parse_metadata(content: str) -> Metadata:
    """Extract the declared verification date and status.

    Front matter keys (``last_verified``/``verified``, ``status``) win over
    inline ``Last verified:`` / ``Status:`` lines.
    """
    front = _frontmatter(content)

    verified = _as_date(front.get("last_verified", front.get("verified")))
    if verified is None:
        m = VERIFIED_RE.search(content)
        if m:
            verified = _as_date(m.group(1))

    status = front.get("status")
    if not isinstance(status, str) or not status.strip():
        m = STATUS_RE.search(content)
        status = m.group(1) if m else None

    return Metadata(verified, status.strip().lower() if status else None)


def _normalize_target(raw: str) -> str | None:
    if raw.startswith("#") or SCHEME_RE.match(raw):
        return None
    target = raw.split("#", 1)[0].split("?", 1)[0]
    if not target.lower().endswith(".md"):
        return None
    return target


def extract_links(content: str, sections: Iterable[str] = ()) -> tuple[str, ...]:
    """Return declared ``.md`` link targets, in order, without duplicates.

    Only H2 sections whose title is in ``sections`` are searched; an empty
    ``sections`` means the whole document.
    """
    wanted = {s.strip().rstrip(":").lower() for s in sections}
    if wanted:
        chunks = [s["text"] for s in parse_sections(content) if s["title"] in wanted]
    else:
        chunks = [content]

    links: list[str] = []
    for chunk in chunks:
        for m in LINK_RE.finditer(chunk):
            target = _normalize_target(m.group(1))
            if target and target not in links:
                links.append(target)
    return tuple(links)


def resolve_link(source_path: str, link: str) -> str | None:
    """Resolve ``link`` declared in ``source_path`` to a project-relative path.

    Returns None when the link escapes the project root.
    """
    if link.startswith("/"):
        joined = link.lstrip("/")
    else:
        joined = posixpath.join(posixpath.dirname(source_path), link)
    resolved = posixpath.normpath(joined)
    if resolved == ".." or resolved.startswith("../") or resolved == ".":
        return None
    return resolved
