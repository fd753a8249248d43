"""
Session manager for the lunalint language client.

Owns the single client session of an activation context and moves it through
Absent -> Starting -> Running -> Stopping -> Absent. Activating while a session
is present stops the old session before the new one spawns its server, so two
live sessions never coexist.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Union

from pydantic import ValidationError

from client.language_client import ClientOptions, ClientState, LanguageClient
from client.types import ServerOptions, TransportKind
from config.client_config import ClientConfig
from config.defaults import CLIENT_ID, CLIENT_NAME
from config.loader import load_config
from host.context import ActivationContext
from host.disposable import Disposable
from host.watcher import FileSystemWatcher

from .exceptions import (
    CommandAlreadyRegisteredError,
    ConfigurationError,
    SessionError,
)
from .scope import DocumentSelector, extension_pattern, source_selector, watch_covers

logger = logging.getLogger(__name__)

ACTIVATE_COMMAND = f"{CLIENT_ID}.activate"
RESTART_COMMAND = f"{CLIENT_ID}.restart"


# --- Session state ---


@dataclass(frozen=True)
class Absent:
    """No session exists."""


@dataclass(frozen=True)
class Starting:
    """The server is being spawned and initialized by ``task``."""
    client: LanguageClient
    task: asyncio.Task


@dataclass(frozen=True)
class Running:
    """The handshake completed; documents are being synchronized."""
    client: LanguageClient


@dataclass(frozen=True)
class Stopping:
    """The session is shutting down; ``task`` completes once the process exited."""
    client: LanguageClient
    task: asyncio.Task


SessionState = Union[Absent, Starting, Running, Stopping]

ABSENT = Absent()


# --- Location and channel ---


@dataclass(frozen=True)
class ServerLocation:
    """Resolved server executable.

    Attributes:
        path: Absolute path, or a bare command name looked up on PATH
        source: "override" when configured explicitly, "extension" when
            resolved against the extension's installation root
    """
    path: str
    source: str


@dataclass(frozen=True)
class ChannelConfiguration:
    """Everything the language client needs to know about its channel.

    Raises:
        ConfigurationError: If the watch scope does not cover the document scope
    """
    server: ServerOptions
    document_selector: DocumentSelector
    watch_patterns: tuple[str, ...]

    def __post_init__(self) -> None:
        if not watch_covers(self.watch_patterns, self.document_selector):
            raise ConfigurationError(
                f"Watch patterns {list(self.watch_patterns)} do not cover "
                f"document patterns {list(self.document_selector.patterns)}"
            )

    @property
    def transport(self) -> TransportKind:
        return self.server.transport


def resolve_server_location(context: ActivationContext, config: ClientConfig) -> ServerLocation:
    """Find the server executable for an activation.

    A configured ``server_path`` wins. Relative overrides are resolved against
    the workspace root, bare command names are left for PATH lookup. Without an
    override the path is resolved against the extension's installation root.
    Whether the executable exists is only checked when the session starts.

    Raises:
        ResolutionError: If there is no override and no installation root
    """
    if config.server_path:
        override = os.path.expanduser(config.server_path)
        if os.path.isabs(override) or not _has_separator(override):
            path = override
        else:
            path = os.path.normpath(os.path.join(context.workspace_root, override))
        return ServerLocation(path=path, source="override")

    return ServerLocation(
        path=context.as_absolute_path(config.server_relative_path),
        source="extension",
    )


def _has_separator(path: str) -> bool:
    return os.sep in path or (os.altsep is not None and os.altsep in path)


def watch_patterns_for(config: ClientConfig) -> tuple[str, ...]:
    """Globs whose changes are forwarded to the server.

    Source files are always watched; the "marker" trigger adds the reload
    marker on top.
    """
    patterns = [extension_pattern(config.file_extension)]
    if config.watch_trigger == "marker":
        patterns.append(f"**/{config.marker_file}")
    return tuple(patterns)


def build_channel_configuration(
    location: ServerLocation,
    config: ClientConfig,
    context: ActivationContext | None = None,
) -> ChannelConfiguration:
    """Combine the server location and config into a channel configuration."""
    server = ServerOptions(
        command=location.path,
        args=tuple(config.server_args),
        transport=TransportKind.STDIO,
        cwd=str(context.workspace_root) if context is not None else None,
    )
    return ChannelConfiguration(
        server=server,
        document_selector=source_selector(config.file_extension, config.language_id),
        watch_patterns=watch_patterns_for(config),
    )


def _dispose_watchers(client: LanguageClient) -> None:
    for watcher in client.options.file_events:
        watcher.dispose()


def _discard(subscriptions: list, item: Disposable) -> None:
    try:
        subscriptions.remove(item)
    except ValueError:
        # Already released by context.dispose()
        pass


# --- Manager ---


class SessionManager:
    """Lifecycle entry points for one extension host.

    The host creates one manager and calls activate() when the extension loads
    and deactivate() when it unloads. Both return immediately; deactivate()
    hands back a task the host may await for full shutdown.

    Args:
        config: Fixed configuration; loaded from the workspace on every
            activation when omitted
        client_factory: Builds the LanguageClient (swapped out in tests)
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client_factory: Callable[..., LanguageClient] = LanguageClient,
    ):
        self._config = config
        self._client_factory = client_factory
        self._state: SessionState = ABSENT
        self._context: ActivationContext | None = None
        self._commands: list[Disposable] = []
        self._command_context: ActivationContext | None = None
        # Per-session entries added to the context's subscriptions
        self._session_subscriptions: dict[LanguageClient, tuple[ActivationContext, Disposable]] = {}
        self.location: ServerLocation | None = None
        self.channel: ChannelConfiguration | None = None

    # --- State ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return not isinstance(self._state, Absent)

    @property
    def client(self) -> LanguageClient | None:
        return getattr(self._state, "client", None)

    @property
    def context(self) -> ActivationContext | None:
        return self._context

    def on_ready(self) -> asyncio.Future | None:
        """Awaitable that settles when the current session finishes starting.

        Returns the start task while starting (rejected with the start error on
        failure), a resolved future while running, and None otherwise.
        """
        state = self._state
        if isinstance(state, Starting):
            return state.task
        if isinstance(state, Running):
            return state.client.on_ready()
        return None

    # --- Activation ---

    def activate(self, context: ActivationContext) -> None:
        """Start a session for the given context without waiting for it.

        Must be called from a running event loop. Errors while resolving the
        server are logged and leave the manager without a session.
        """
        loop = asyncio.get_running_loop()
        logger.info("Activating %s client", CLIENT_NAME)

        previous_stop = self._begin_stop()
        if previous_stop is not None:
            logger.info("Stopping the running %s session first", CLIENT_NAME)
        self.location, self.channel = None, None

        self._context = context
        self._register_commands(context)

        try:
            config = self._config if self._config is not None else load_config(context.workspace_root)
            location = resolve_server_location(context, config)
            channel = build_channel_configuration(location, config, context)
        except (ConfigurationError, ValidationError) as e:
            logger.error("Cannot start %s client: %s", CLIENT_NAME, e)
            return

        logger.info("Using %s server at %s (%s)", CLIENT_NAME, location.path, location.source)
        self.location, self.channel = location, channel

        watchers = self._create_watchers(context, channel.watch_patterns)
        client = self._client_factory(
            CLIENT_ID,
            CLIENT_NAME,
            channel.server,
            ClientOptions(
                document_selector=channel.document_selector,
                file_events=watchers,
                workspace=context.workspace,
                root_path=str(context.workspace_root),
                event_bus=context.event_bus,
                initialize_timeout=config.initialize_timeout,
                request_timeout=config.request_timeout,
                shutdown_timeout=config.shutdown_timeout,
                save_include_text=config.save_include_text,
                trace=config.trace,
            ),
        )
        resources = Disposable.from_(*watchers, Disposable(client.dispose))
        context.subscriptions.append(resources)
        self._session_subscriptions[client] = (context, resources)

        task = loop.create_task(self._start(client, previous_stop))
        task.add_done_callback(functools.partial(self._on_start_done, client))
        self._state = Starting(client, task)

    def restart(self) -> None:
        """Stop the current session and start a new one for the last context.

        Raises:
            SessionError: If activate() was never called
        """
        if self._context is None:
            raise SessionError(f"{CLIENT_NAME} client was never activated")
        self.activate(self._context)

    def _create_watchers(self, context: ActivationContext, patterns: tuple[str, ...]) -> list[FileSystemWatcher]:
        watchers = []
        for pattern in patterns:
            try:
                watchers.append(context.create_file_system_watcher(pattern))
            except OSError as e:
                logger.warning("Cannot watch %s: %s", pattern, e)
        return watchers

    async def _start(self, client: LanguageClient, previous_stop: asyncio.Task | None) -> None:
        if previous_stop is not None:
            # Only waits; the previous stop logs its own failures
            await asyncio.wait({previous_stop})
        await client.start()

    def _on_start_done(self, client: LanguageClient, task: asyncio.Task) -> None:
        error = None if task.cancelled() else task.exception()
        if error is not None:
            logger.error("%s client failed to start: %s", CLIENT_NAME, error)

        state = self._state
        if not isinstance(state, Starting) or state.client is not client:
            # Superseded by deactivate() or another activate()
            return
        if task.cancelled() or error is not None:
            self._state = ABSENT
            self.location, self.channel = None, None
            _dispose_watchers(client)
            self._release_session(client)
        else:
            self._state = Running(client)
            logger.info("%s client is running", CLIENT_NAME)

    # --- Deactivation ---

    def deactivate(self, timeout: float | None = None) -> asyncio.Task | None:
        """Stop the current session.

        Args:
            timeout: Seconds allowed for a graceful shutdown before the server
                is killed; unbounded when None

        Returns:
            Task completing once the server process has exited, or None when
            there is nothing to stop. Repeated calls while stopping return the
            same task.
        """
        self._dispose_commands()
        task = self._begin_stop(timeout)
        if task is None:
            logger.warning("%s client is not defined; nothing to stop", CLIENT_NAME)
            return None
        logger.info("Deactivating %s client", CLIENT_NAME)
        return task

    def _begin_stop(self, timeout: float | None = None) -> asyncio.Task | None:
        state = self._state
        if isinstance(state, Absent):
            return None
        if isinstance(state, Stopping):
            return state.task

        if isinstance(state, Starting) and not state.task.done() and state.client.state == ClientState.STOPPED:
            # Start never reached the server (not run yet, or queued behind a previous stop)
            state.task.cancel()
        task = asyncio.get_running_loop().create_task(self._stop_client(state.client, timeout))
        stopping = Stopping(state.client, task)
        task.add_done_callback(functools.partial(self._on_stop_done, stopping))
        self._state = stopping
        return task

    async def _stop_client(self, client: LanguageClient, timeout: float | None) -> None:
        try:
            await client.stop(timeout)
        except Exception:
            logger.exception("Error while stopping %s client", CLIENT_NAME)
        finally:
            _dispose_watchers(client)

    def _on_stop_done(self, stopping: Stopping, task: asyncio.Task) -> None:
        self._release_session(stopping.client)
        if self._state is stopping:
            self._state = ABSENT
            self.location, self.channel = None, None
        logger.info("%s client stopped", CLIENT_NAME)

    def _release_session(self, client: LanguageClient) -> None:
        """Drop a finished session's entry from its context's subscriptions."""
        entry = self._session_subscriptions.pop(client, None)
        if entry is not None:
            context, resources = entry
            _discard(context.subscriptions, resources)

    # --- Commands ---

    def _register_commands(self, context: ActivationContext) -> None:
        self._dispose_commands()
        self._command_context = context
        handlers: dict[str, Callable[..., Any]] = {
            ACTIVATE_COMMAND: self._activate_command,
            RESTART_COMMAND: self._restart_command,
        }
        for name, handler in handlers.items():
            try:
                disposable = context.register_command(name, handler)
            except CommandAlreadyRegisteredError as e:
                logger.warning("%s", e)
                continue
            self._commands.append(disposable)
            context.subscriptions.append(disposable)

    def _dispose_commands(self) -> None:
        commands, self._commands = self._commands, []
        context, self._command_context = self._command_context, None
        for disposable in reversed(commands):
            disposable.dispose()
            if context is not None:
                _discard(context.subscriptions, disposable)

    def _activate_command(self) -> str:
        state = type(self._state).__name__.lower()
        logger.info("%s client is %s", CLIENT_NAME, state)
        return state

    def _restart_command(self) -> None:
        try:
            self.restart()
        except Exception:
            logger.exception("Failed to restart %s client", CLIENT_NAME)
