"""
Core session logic for the lunalint client.

Leaf modules (exceptions, events, scope) are exported here. The session
manager lives in core.session and is imported from there, since it depends on
the client and host packages which themselves build on these leaves.
"""

from .events import Event, EventBus, NullEventBus, RecordingEventBus
from .exceptions import (
    CommandAlreadyRegisteredError,
    CommandNotFoundError,
    ConfigurationError,
    CoreError,
    InvalidOperationError,
    NotFoundError,
    ResolutionError,
    SessionError,
)
from .scope import (
    DocumentFilter,
    DocumentSelector,
    extension_pattern,
    file_uri,
    glob_matches,
    source_selector,
    split_uri,
    watch_covers,
)

__all__ = [
    # Events
    "Event",
    "EventBus",
    "NullEventBus",
    "RecordingEventBus",
    # Exceptions
    "CoreError",
    "NotFoundError",
    "InvalidOperationError",
    "ConfigurationError",
    "ResolutionError",
    "SessionError",
    "CommandNotFoundError",
    "CommandAlreadyRegisteredError",
    # Scope
    "DocumentFilter",
    "DocumentSelector",
    "extension_pattern",
    "file_uri",
    "glob_matches",
    "source_selector",
    "split_uri",
    "watch_covers",
]
