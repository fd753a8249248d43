"""
Host-side contract for running the lunalint client.

Provides the activation context, disposables, command registry, filesystem
watcher and open-document workspace an editor host supplies to the session
manager.
"""

from .commands import CommandRegistry
from .context import ActivationContext
from .disposable import Disposable, dispose_all
from .watcher import FileChangeType, FileEvent, FileSystemWatcher
from .workspace import TextDocument, Workspace, get_language_id

__all__ = [
    "ActivationContext",
    "CommandRegistry",
    "Disposable",
    "dispose_all",
    "FileChangeType",
    "FileEvent",
    "FileSystemWatcher",
    "TextDocument",
    "Workspace",
    "get_language_id",
]
