"""
Filesystem watcher backed by watchdog.

The watchdog observer runs on its own thread; matching events are handed to
the asyncio loop with call_soon_threadsafe so listeners always run on the loop
that created the watcher.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from core.scope import glob_matches

from .disposable import Disposable

logger = logging.getLogger(__name__)

OBSERVER_JOIN_TIMEOUT_SECONDS = 2.0


class FileChangeType(IntEnum):
    """LSP file change types."""
    CREATED = 1
    CHANGED = 2
    DELETED = 3


@dataclass(frozen=True)
class FileEvent:
    """A filesystem change for a path matching the watcher's glob."""
    path: str
    type: FileChangeType


FileEventListener = Callable[[FileEvent], None]


class _GlobEventHandler(FileSystemEventHandler):
    """Translates watchdog events into FileEvents for one watcher."""

    def __init__(self, watcher: "FileSystemWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: Any) -> None:
        if not event.is_directory:
            self._watcher._dispatch(event.src_path, FileChangeType.CREATED)

    def on_modified(self, event: Any) -> None:
        if not event.is_directory:
            self._watcher._dispatch(event.src_path, FileChangeType.CHANGED)

    def on_deleted(self, event: Any) -> None:
        if not event.is_directory:
            self._watcher._dispatch(event.src_path, FileChangeType.DELETED)

    def on_moved(self, event: Any) -> None:
        if not event.is_directory:
            # Treat as delete + create
            self._watcher._dispatch(event.src_path, FileChangeType.DELETED)
            self._watcher._dispatch(event.dest_path, FileChangeType.CREATED)


class FileSystemWatcher:
    """Watches a directory tree for changes to files matching a glob.

    Attributes:
        root: Directory being watched
        glob_pattern: Pattern matched against paths relative to root
    """

    def __init__(
        self,
        root: str | Path,
        glob_pattern: str,
        loop: asyncio.AbstractEventLoop | None = None,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.root = Path(root).resolve()
        self.glob_pattern = glob_pattern
        self._loop = loop
        self._observer_factory = observer_factory
        self._observer: Any = None
        self._listeners: dict[FileChangeType, list[FileEventListener]] = {
            change: [] for change in FileChangeType
        }
        self._disposed = False

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start the observer thread. Missing roots are logged and skipped."""
        if self._disposed or self._observer is not None:
            return
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                self._loop = None
        if not self.root.is_dir():
            logger.warning("Not watching %s: directory does not exist", self.root)
            return

        observer = self._observer_factory()
        observer.schedule(_GlobEventHandler(self), str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.debug("Watching %s for %s", self.root, self.glob_pattern)

    def matches(self, path: str | Path) -> bool:
        path = Path(path)
        try:
            relative = path.resolve().relative_to(self.root)
        except ValueError:
            return False
        return glob_matches(self.glob_pattern, relative.as_posix())

    def _add_listener(self, change: FileChangeType, listener: FileEventListener) -> Disposable:
        listeners = self._listeners[change]
        listeners.append(listener)

        def remove() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return Disposable(remove)

    def on_did_create(self, listener: FileEventListener) -> Disposable:
        return self._add_listener(FileChangeType.CREATED, listener)

    def on_did_change(self, listener: FileEventListener) -> Disposable:
        return self._add_listener(FileChangeType.CHANGED, listener)

    def on_did_delete(self, listener: FileEventListener) -> Disposable:
        return self._add_listener(FileChangeType.DELETED, listener)

    def on_any(self, listener: FileEventListener) -> Disposable:
        """Subscribe to every change type at once."""
        return Disposable.from_(*(self._add_listener(c, listener) for c in FileChangeType))

    def _dispatch(self, path: str, change: FileChangeType) -> None:
        """Called from the observer thread."""
        if self._disposed or not self.matches(path):
            return
        event = FileEvent(path=str(Path(path).resolve()), type=change)
        loop = self._loop
        if loop is None or loop.is_closed():
            self._fire(event)
            return
        try:
            loop.call_soon_threadsafe(self._fire, event)
        except RuntimeError:
            # Loop closed between the check and the call
            logger.debug("Dropping %s: event loop closed", event)

    def _fire(self, event: FileEvent) -> None:
        if self._disposed:
            return
        for listener in list(self._listeners[event.type]):
            try:
                listener(event)
            except Exception:
                logger.exception("File event listener failed for %s", event.path)

    def dispose(self) -> None:
        """Stop the observer and drop all listeners."""
        if self._disposed:
            return
        self._disposed = True
        for listeners in self._listeners.values():
            listeners.clear()
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=OBSERVER_JOIN_TIMEOUT_SECONDS)
            logger.debug("Stopped watching %s", self.root)
