"""
Activation context handed to an extension by its host.

The context resolves paths relative to the extension's installation root,
collects disposables for cleanup on unload, creates filesystem watchers and
registers commands.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable

from core.events import EventBus, NullEventBus
from core.exceptions import ResolutionError

from .commands import CommandRegistry
from .disposable import Disposable, SupportsDispose, dispose_all
from .watcher import FileSystemWatcher
from .workspace import Workspace

logger = logging.getLogger(__name__)


class ActivationContext:
    """Host resources for one extension load.

    Attributes:
        extension_path: Installation root of the extension (may be empty)
        workspace: Open documents and workspace root
        commands: Registry commands are registered with
        event_bus: Where client events are published
        subscriptions: Disposables released when the host unloads the extension
    """

    def __init__(
        self,
        extension_path: str | Path | None,
        workspace: Workspace | None = None,
        commands: CommandRegistry | None = None,
        event_bus: EventBus | None = None,
    ):
        self.extension_path = str(extension_path) if extension_path else ""
        self.workspace = workspace or Workspace()
        self.commands = commands or CommandRegistry()
        self.event_bus: EventBus = event_bus or NullEventBus()
        self.subscriptions: list[SupportsDispose] = []

    @property
    def workspace_root(self) -> Path:
        return self.workspace.root

    def as_absolute_path(self, relative_path: str) -> str:
        """Resolve a path relative to the extension's installation root.

        Raises:
            ResolutionError: If the context has no installation root
        """
        if not self.extension_path:
            raise ResolutionError("extension installation root is not set")
        return os.path.normpath(os.path.join(os.path.abspath(self.extension_path), relative_path))

    def create_file_system_watcher(self, glob_pattern: str) -> FileSystemWatcher:
        """Create and start a watcher over the workspace root."""
        watcher = FileSystemWatcher(self.workspace_root, glob_pattern)
        watcher.start()
        return watcher

    def register_command(self, name: str, callback: Callable[..., Any]) -> Disposable:
        return self.commands.register_command(name, callback)

    def dispose(self) -> None:
        """Release every subscription, most recent first."""
        count = len(self.subscriptions)
        dispose_all(self.subscriptions)
        logger.debug("Disposed %d subscriptions", count)
