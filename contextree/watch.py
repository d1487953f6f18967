"""Watch mode: rescan and re-audit the project when context files change.

A ``watchdog`` observer on the project root marks the tree dirty on any
create/modify/delete/move of a ``.md`` file outside ignored directories.
:meth:`TreeWatcher.poll` rescans a dirty tree and hands the previous and
current snapshots to the audit callback, so progress transitions are seen
as they happen.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from contextree.scan import ScanError, scan
from contextree.snapshot import Snapshot

log = logging.getLogger(__name__)


# Callback signature: (previous, current)
AuditCallback = Callable[[Snapshot, Snapshot], None]


class _TreeEventHandler(FileSystemEventHandler):
    """Watchdog handler that reports relevant file paths, root-relative."""

    def __init__(
        self,
        on_change: Callable[[str], None],
        project_root: Path,
        ignore: Iterable[str] = (),
        extensions: tuple[str, ...] = (".md",),
    ) -> None:
        super().__init__()
        self._on_change = on_change
        self._project_root = project_root
        self._ignore = frozenset(ignore)
        self._extensions = extensions

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._handle(event.src_path)
            self._handle(getattr(event, "dest_path", ""))

    def _handle(self, abs_path: str | bytes) -> None:
        if isinstance(abs_path, bytes):
            abs_path = abs_path.decode(errors="replace")
        if not abs_path:
            return
        path = Path(abs_path)
        if path.suffix.lower() not in self._extensions:
            return
        try:
            rel = path.relative_to(self._project_root)
        except ValueError:
            return
        if any(part in self._ignore for part in rel.parts[:-1]):
            return
        self._on_change(rel.as_posix())


class TreeWatcher:
    """Rescans the project on change and reports snapshot pairs.

    Parameters
    ----------
    project_root:
        Project root directory.
    config:
        Loaded config dict.
    on_audit:
        Called with ``(previous, current)`` after every successful rescan.
    """

    def __init__(
        self,
        project_root: Path,
        config: dict,
        on_audit: AuditCallback,
    ) -> None:
        self._project_root = Path(project_root).resolve()
        self._config = config
        self._on_audit = on_audit
        self._dirty = threading.Event()
        self._observer: Observer | None = None
        self.snapshot: Snapshot = scan(self._project_root, config)

    def mark_dirty(self, rel_path: str | None = None) -> None:
        if rel_path:
            log.debug("Changed: %s", rel_path)
        self._dirty.set()

    @property
    def dirty(self) -> bool:
        return self._dirty.is_set()

    def start(self) -> None:
        """Start the filesystem observer."""
        handler = _TreeEventHandler(
            self.mark_dirty, self._project_root, ignore=self._config["scan"]["ignore"],
        )
        self._observer = Observer()
        self._observer.schedule(handler, str(self._project_root), recursive=True)
        self._observer.daemon = True
        self._observer.start()
        log.info("Watching: %s", self._project_root)

    def stop(self) -> None:
        """Stop the filesystem observer."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def poll(self) -> Snapshot | None:
        """Rescan if dirty; return the new snapshot, or None if nothing ran.

        A failed rescan is logged and leaves the previous snapshot current.
        """
        if not self._dirty.is_set():
            return None
        self._dirty.clear()
        try:
            current = scan(self._project_root, self._config)
        except ScanError as exc:
            log.error("Rescan failed: %s", exc)
            return None
        previous, self.snapshot = self.snapshot, current
        log.info("Rescanned %s (%d nodes)", self._project_root, len(current))
        self._on_audit(previous, current)
        return current

    def run(self, interval: float, stop: threading.Event | None = None) -> None:
        """Poll every ``interval`` seconds until ``stop`` is set or interrupted."""
        stop = stop or threading.Event()
        self.start()
        try:
            while not stop.is_set():
                self.poll()
                stop.wait(interval)
        except KeyboardInterrupt:
            log.info("Interrupted, stopping watcher")
        finally:
            self.stop()
