"""Disposable handles for host resources."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class SupportsDispose(Protocol):
    def dispose(self) -> None: ...


class Disposable:
    """Releases a resource exactly once.

    Examples:
        >>> d = Disposable(lambda: print("released"))
        >>> d.dispose()
        released
        >>> d.dispose()  # second call does nothing
    """

    def __init__(self, callback: Callable[[], None] | None = None):
        self._callback = callback
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._callback is not None:
            self._callback()

    @classmethod
    def from_(cls, *items: SupportsDispose) -> "Disposable":
        """Combine several disposables into one, released in reverse order."""

        def dispose_all() -> None:
            for item in reversed(items):
                item.dispose()

        return cls(dispose_all)


def dispose_all(items: list[SupportsDispose]) -> None:
    """Dispose items in reverse registration order and empty the list.

    A failing item is logged and does not stop the others from being released.
    """
    while items:
        item = items.pop()
        try:
            item.dispose()
        except Exception:
            logger.exception("Failed to dispose %r", item)
