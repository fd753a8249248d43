"""Named command registry."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from core.exceptions import CommandAlreadyRegisteredError, CommandNotFoundError

from .disposable import Disposable

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Maps command names to callbacks.

    Registration returns a Disposable that removes the command again, so an
    extension can hand it to its activation context for cleanup on unload.
    """

    def __init__(self) -> None:
        self._commands: dict[str, Callable[..., Any]] = {}

    def register_command(self, name: str, callback: Callable[..., Any]) -> Disposable:
        """Register a command.

        Raises:
            CommandAlreadyRegisteredError: If the name is taken
        """
        if name in self._commands:
            raise CommandAlreadyRegisteredError(name)
        self._commands[name] = callback
        logger.debug("Registered command '%s'", name)

        def unregister() -> None:
            if self._commands.get(name) is callback:
                del self._commands[name]
                logger.debug("Unregistered command '%s'", name)

        return Disposable(unregister)

    def has_command(self, name: str) -> bool:
        return name in self._commands

    def list_commands(self) -> list[str]:
        return sorted(self._commands)

    async def execute_command(self, name: str, *args: Any) -> Any:
        """Run a command, awaiting it when the callback is a coroutine function.

        Raises:
            CommandNotFoundError: If no command with that name is registered
        """
        callback = self._commands.get(name)
        if callback is None:
            raise CommandNotFoundError(name)
        result = callback(*args)
        if inspect.isawaitable(result):
            result = await result
        return result
