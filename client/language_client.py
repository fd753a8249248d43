"""
Language client: one run of the connection to a language server.

Spawns the server, performs the initialize handshake, keeps open documents
and watched files synchronized, collects published diagnostics and shuts the
server down again.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine

from config.defaults import CLIENT_VERSION
from core.events import (
    DIAGNOSTICS_PUBLISHED,
    SESSION_FAILED,
    SESSION_RUNNING,
    SESSION_STARTING,
    SESSION_STOPPED,
    Event,
    EventBus,
    NullEventBus,
)
from core.exceptions import InvalidOperationError
from core.scope import DocumentSelector, file_uri, split_uri
from host.disposable import Disposable
from host.logging_config import SERVER_LOGGER_NAME, log_timing
from host.watcher import FileEvent, FileSystemWatcher
from host.workspace import TextDocument, Workspace

from .connection import JsonRpcConnection
from .exceptions import (
    ClientError,
    ClientStartError,
    HandshakeError,
    RequestTimeoutError,
)
from .types import Diagnostic, MessageType, ServerOptions, TransportKind

logger = logging.getLogger(__name__)

# Constants
LSP_INIT_TIMEOUT_SECONDS = 5.0
LSP_REQUEST_TIMEOUT_SECONDS = 2.0
LSP_SHUTDOWN_TIMEOUT_SECONDS = 2.0

_MESSAGE_LEVELS = {
    MessageType.ERROR: logging.ERROR,
    MessageType.WARNING: logging.WARNING,
    MessageType.INFO: logging.INFO,
    MessageType.LOG: logging.DEBUG,
}

DiagnosticsListener = Callable[[str, list[Diagnostic]], None]


class ClientState(str, Enum):
    """Lifecycle of a LanguageClient."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ClientOptions:
    """What the client synchronizes and how long it waits.

    Attributes:
        document_selector: Open documents synchronized to the server
        file_events: Watchers whose events are forwarded to the server
        workspace: Open documents of the host
        root_path: Workspace root reported to the server
        event_bus: Where lifecycle and diagnostics events are published
        save_include_text: Always send document text with didSave
    """
    document_selector: DocumentSelector
    file_events: list[FileSystemWatcher] = field(default_factory=list)
    workspace: Workspace | None = None
    root_path: str | None = None
    event_bus: EventBus = field(default_factory=NullEventBus)
    initialize_timeout: float = LSP_INIT_TIMEOUT_SECONDS
    request_timeout: float = LSP_REQUEST_TIMEOUT_SECONDS
    shutdown_timeout: float = LSP_SHUTDOWN_TIMEOUT_SECONDS
    save_include_text: bool = True
    trace: bool = False
    initialization_options: dict | None = None


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class LanguageClient:
    """Client side of one language server session."""

    def __init__(
        self,
        client_id: str,
        name: str,
        server_options: ServerOptions,
        client_options: ClientOptions,
        process_factory: Callable[..., Coroutine[Any, Any, asyncio.subprocess.Process]] = asyncio.create_subprocess_exec,
    ):
        self.id = client_id
        self.name = name
        self.server_options = server_options
        self.options = client_options
        self._process_factory = process_factory
        self._state = ClientState.STOPPED
        self._connection: JsonRpcConnection | None = None
        self._ready: asyncio.Future[None] | None = None
        self._start_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None
        self._hooks: list[Disposable] = []
        self._pending: set[asyncio.Task] = set()
        self._diagnostics: dict[str, list[Diagnostic]] = {}
        self._diagnostics_listeners: list[DiagnosticsListener] = []
        self._open_documents: set[str] = set()
        self._server_logger = logging.getLogger(SERVER_LOGGER_NAME)
        self.capabilities: dict = {}
        self.server_info: dict | None = None

    def __repr__(self) -> str:
        return f"LanguageClient({self.id!r}, state={self._state.value})"

    # --- State ---

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ClientState.RUNNING

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._connection.process if self._connection else None

    def on_ready(self) -> asyncio.Future[None]:
        """Future resolved when the handshake completes, rejected if start fails."""
        if self._ready is None:
            raise InvalidOperationError(f"{self.name} client has not been started")
        return self._ready

    def _set_state(self, state: ClientState) -> None:
        if state != self._state:
            logger.debug("%s client: %s -> %s", self.name, self._state.value, state.value)
            self._state = state

    async def _publish(self, event_type: str, **properties: Any) -> None:
        try:
            await self.options.event_bus.publish(
                Event(type=event_type, properties={"client": self.id, **properties})
            )
        except Exception:
            logger.exception("Failed to publish %s", event_type)

    # --- Start ---

    async def start(self) -> None:
        """Spawn the server and complete the initialize handshake.

        Raises:
            ClientStartError: If the server cannot be spawned
            HandshakeError: If the server fails the initialize handshake
        """
        if self._state == ClientState.RUNNING:
            return
        if self._state == ClientState.STARTING and self._ready is not None:
            await asyncio.shield(self._ready)
            return
        if self._state == ClientState.STOPPING:
            raise InvalidOperationError(f"{self.name} client is stopping")

        self._stop_task = None
        self._ready = asyncio.get_running_loop().create_future()
        self._ready.add_done_callback(_consume_exception)
        self._start_task = asyncio.current_task()
        self._set_state(ClientState.STARTING)

        try:
            await self._publish(SESSION_STARTING, command=self.server_options.command)
            with log_timing(logger, f"{self.name} start", level=logging.INFO):
                await self._spawn()
                await self._initialize()
            self._hook()
        except asyncio.CancelledError:
            self._abort_start()
            self._ready.cancel()
            raise
        except Exception as e:
            logger.error("%s server failed to start: %s", self.name, e)
            if self._connection is not None:
                await self._connection.close()
            self._abort_start()
            self._ready.set_exception(e)
            await self._publish(SESSION_FAILED, error=str(e))
            raise
        finally:
            self._start_task = None

        self._set_state(ClientState.RUNNING)
        self._ready.set_result(None)
        logger.info("%s server initialized", self.name)
        await self._publish(SESSION_RUNNING, capabilities=self.capabilities)
        self._replay_open_documents()

    async def _spawn(self) -> None:
        opts = self.server_options
        if opts.transport != TransportKind.STDIO:
            raise ClientStartError(f"Unsupported transport: {opts.transport.value}")
        if shutil.which(opts.command) is None and not os.path.isfile(opts.command):
            raise ClientStartError(f"Server executable not found: {opts.command}")

        env = {**os.environ, **opts.env} if opts.env else None
        logger.info("Starting %s: %s", self.name, " ".join(opts.argv))
        try:
            process = await self._process_factory(
                *opts.argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=opts.cwd,
                env=env,
            )
        except OSError as e:
            raise ClientStartError(f"Failed to spawn {opts.command}: {e}") from e

        try:
            connection = JsonRpcConnection.from_process(
                process,
                request_timeout=self.options.request_timeout,
                trace=self.options.trace,
            )
        except ClientError as e:
            process.kill()
            raise ClientStartError(str(e)) from e

        connection.on_notification("textDocument/publishDiagnostics", self._handle_publish_diagnostics)
        connection.on_notification("window/logMessage", self._handle_log_message)
        connection.on_notification("window/showMessage", self._handle_log_message)
        connection.on_request("client/registerCapability", lambda params: None)
        connection.on_request("client/unregisterCapability", lambda params: None)
        connection.on_request("window/workDoneProgress/create", lambda params: None)
        connection.on_request("workspace/configuration", lambda params: [None] * len(params.get("items", [])))
        connection.start_listening()
        self._connection = connection

    def _root_path(self) -> str:
        if self.options.root_path:
            return os.path.abspath(self.options.root_path)
        if self.options.workspace is not None:
            return str(self.options.workspace.root)
        return os.getcwd()

    async def _initialize(self) -> None:
        assert self._connection is not None
        root = self._root_path()
        params: dict[str, Any] = {
            "processId": os.getpid(),
            "clientInfo": {"name": self.id, "version": CLIENT_VERSION},
            "rootUri": file_uri(root),
            "rootPath": root,
            "workspaceFolders": [{"uri": file_uri(root), "name": os.path.basename(root) or root}],
            "capabilities": {
                "textDocument": {
                    "synchronization": {
                        "didSave": True,
                        "dynamicRegistration": False,
                    },
                    "publishDiagnostics": {"relatedInformation": True},
                },
                "workspace": {
                    "didChangeWatchedFiles": {"dynamicRegistration": False},
                    "workspaceFolders": True,
                },
            },
        }
        if self.options.initialization_options:
            params["initializationOptions"] = self.options.initialization_options

        try:
            result = await self._connection.send_request(
                "initialize", params, timeout=self.options.initialize_timeout
            )
        except RequestTimeoutError as e:
            raise HandshakeError("Initialize request timed out") from e
        except ClientError as e:
            raise HandshakeError(f"Initialize failed: {e}") from e

        if isinstance(result, dict):
            self.capabilities = result.get("capabilities") or {}
            self.server_info = result.get("serverInfo")

        try:
            await self._connection.send_notification("initialized", {})
        except ClientError as e:
            raise HandshakeError(f"Initialized notification failed: {e}") from e

    def _abort_start(self) -> None:
        self._unhook()
        if self._connection is not None:
            self._connection.kill()
            self._connection = None
        self._set_state(ClientState.STOPPED)

    # --- Stop ---

    async def stop(self, timeout: float | None = None) -> None:
        """Shut the server down; safe in every state and on repeated calls.

        Args:
            timeout: Upper bound for the whole shutdown; the process is
                killed when it is exceeded
        """
        if self._stop_task is None:
            if self._state == ClientState.STOPPED and self._connection is None:
                return
            self._stop_task = asyncio.create_task(self._stop(timeout))
        await asyncio.shield(self._stop_task)

    async def _stop(self, timeout: float | None) -> None:
        try:
            if timeout is None:
                await self._graceful_stop()
            else:
                await asyncio.wait_for(self._graceful_stop(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("%s did not stop within %.1fs; killing server", self.name, timeout)
            self.dispose()
        await self._publish(SESSION_STOPPED)

    async def _graceful_stop(self) -> None:
        if self._state == ClientState.STARTING and self._ready is not None:
            # Let the in-flight start settle; a failed start cleans up after itself
            await asyncio.wait({self._ready})

        connection = self._connection
        if connection is None:
            self._set_state(ClientState.STOPPED)
            return

        self._set_state(ClientState.STOPPING)
        self._unhook()
        with log_timing(logger, f"{self.name} shutdown", level=logging.INFO):
            if not connection.closed:
                try:
                    await connection.send_request("shutdown", None, timeout=self.options.shutdown_timeout)
                    await connection.send_notification("exit", None)
                except ClientError as e:
                    logger.warning("%s server did not shut down cleanly: %s", self.name, e)
            await connection.close()
        await self._drain_pending()
        self._connection = None
        self._set_state(ClientState.STOPPED)

    async def _drain_pending(self) -> None:
        pending = [t for t in self._pending if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def dispose(self) -> None:
        """Synchronous teardown used when the host unloads without stopping."""
        self._unhook()
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
        for task in list(self._pending):
            task.cancel()
        if self._connection is not None:
            self._connection.kill()
            self._connection = None
        self._set_state(ClientState.STOPPED)

    # --- Requests ---

    async def send_request(self, method: str, params: dict | None, timeout: float | None = None) -> Any:
        if not self.is_running or self._connection is None:
            raise InvalidOperationError(f"{self.name} client is not running")
        return await self._connection.send_request(method, params, timeout=timeout)

    async def send_notification(self, method: str, params: dict | None) -> None:
        if not self.is_running or self._connection is None:
            raise InvalidOperationError(f"{self.name} client is not running")
        await self._connection.send_notification(method, params)

    def _schedule_notification(self, method: str, params: dict) -> None:
        """Queue a notification from a synchronous callback.

        Tasks write in creation order, so notifications keep their order.
        """
        if not self.is_running or self._connection is None:
            return
        task = asyncio.get_running_loop().create_task(self._notify(method, params))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _notify(self, method: str, params: dict) -> None:
        try:
            await self.send_notification(method, params)
        except (ClientError, InvalidOperationError) as e:
            logger.warning("Failed to send %s: %s", method, e)

    # --- Synchronization ---

    def _hook(self) -> None:
        workspace = self.options.workspace
        if workspace is not None:
            self._hooks.extend([
                workspace.on_did_open(self._did_open),
                workspace.on_did_change(self._did_change),
                workspace.on_did_save(self._did_save),
                workspace.on_did_close(self._did_close),
            ])
        for watcher in self.options.file_events:
            self._hooks.append(watcher.on_any(self._did_change_watched_file))

    def _unhook(self) -> None:
        hooks, self._hooks = self._hooks, []
        for hook in hooks:
            hook.dispose()

    def _replay_open_documents(self) -> None:
        if self.options.workspace is None:
            return
        for document in self.options.workspace.documents:
            self._did_open(document)

    def _in_scope(self, document: TextDocument) -> bool:
        return self.options.document_selector.matches(document.path, document.language_id)

    def _did_open(self, document: TextDocument) -> None:
        if not self._in_scope(document) or document.path in self._open_documents:
            return
        self._open_documents.add(document.path)
        self._schedule_notification("textDocument/didOpen", {"textDocument": document.to_item()})

    def _did_change(self, document: TextDocument) -> None:
        if document.path not in self._open_documents:
            return
        self._schedule_notification("textDocument/didChange", {
            "textDocument": {"uri": document.uri, "version": document.version},
            "contentChanges": [{"text": document.text}],
        })

    def _did_save(self, document: TextDocument) -> None:
        if document.path not in self._open_documents:
            return
        params: dict[str, Any] = {"textDocument": {"uri": document.uri}}
        if self._save_includes_text():
            params["text"] = document.text
        self._schedule_notification("textDocument/didSave", params)

    def _did_close(self, document: TextDocument) -> None:
        if document.path not in self._open_documents:
            return
        self._open_documents.discard(document.path)
        self._diagnostics.pop(document.path, None)
        self._schedule_notification("textDocument/didClose", {"textDocument": {"uri": document.uri}})

    def _save_includes_text(self) -> bool:
        if self.options.save_include_text:
            return True
        sync = self.capabilities.get("textDocumentSync")
        if isinstance(sync, dict):
            save = sync.get("save")
            return isinstance(save, dict) and bool(save.get("includeText"))
        return False

    def _did_change_watched_file(self, event: FileEvent) -> None:
        self._schedule_notification("workspace/didChangeWatchedFiles", {
            "changes": [{"uri": file_uri(event.path), "type": int(event.type)}],
        })

    # --- Server notifications ---

    def _handle_publish_diagnostics(self, params: dict) -> None:
        _, path = split_uri(params.get("uri", ""))
        path = os.path.realpath(path)
        diagnostics = [Diagnostic.from_dict(d) for d in params.get("diagnostics", [])]
        self._diagnostics[path] = diagnostics
        logger.debug("%d diagnostics for %s", len(diagnostics), path)

        for listener in list(self._diagnostics_listeners):
            try:
                listener(path, diagnostics)
            except Exception:
                logger.exception("Diagnostics listener failed for %s", path)

        task = asyncio.get_running_loop().create_task(self._publish(
            DIAGNOSTICS_PUBLISHED,
            path=path,
            diagnostics=[d.pretty_format() for d in diagnostics],
        ))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _handle_log_message(self, params: dict) -> None:
        try:
            level = _MESSAGE_LEVELS.get(MessageType(params.get("type", MessageType.LOG)), logging.DEBUG)
        except ValueError:
            level = logging.INFO
        self._server_logger.log(level, "%s", params.get("message", ""))

    def on_diagnostics(self, listener: DiagnosticsListener) -> Disposable:
        """Call listener(path, diagnostics) whenever the server publishes."""
        self._diagnostics_listeners.append(listener)

        def remove() -> None:
            if listener in self._diagnostics_listeners:
                self._diagnostics_listeners.remove(listener)

        return Disposable(remove)

    def diagnostics(self, path: str) -> list[Diagnostic]:
        """Current diagnostics for a file (may be empty if none received yet)."""
        return list(self._diagnostics.get(os.path.realpath(path), []))

    def all_diagnostics(self) -> dict[str, list[Diagnostic]]:
        return {path: list(diags) for path, diags in self._diagnostics.items()}
