"""
JSON-RPC 2.0 connection over stdio with Content-Length framing.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable

from host.logging_config import SERVER_LOGGER_NAME

from .exceptions import (
    ConnectionClosedError,
    RequestTimeoutError,
    ResponseError,
)

logger = logging.getLogger(__name__)

# Constants
DEFAULT_REQUEST_TIMEOUT_SECONDS = 2.0
WRITER_CLOSE_TIMEOUT_SECONDS = 1.0
PROCESS_EXIT_TIMEOUT_SECONDS = 2.0

# JSON-RPC error codes
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

NotificationHandler = Callable[[dict], None]
RequestHandler = Callable[[dict], Any]


def encode_message(message: dict) -> bytes:
    """Frame a JSON-RPC message with a Content-Length header."""
    body = json.dumps(message).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("utf-8")
    return header + body


async def read_message(reader: asyncio.StreamReader) -> dict | None:
    """Read one Content-Length framed JSON message.

    Returns:
        The decoded message, or None at end of stream
    """
    headers: dict[str, str] = {}

    # Read headers until empty line
    while True:
        line = await reader.readline()
        if not line:
            return None

        line_str = line.decode("utf-8").strip()
        if not line_str:
            if headers:
                break
            continue

        if ":" in line_str:
            key, value = line_str.split(":", 1)
            headers[key.strip().lower()] = value.strip()

    content_length = int(headers.get("content-length", 0))
    if content_length <= 0:
        return None

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError:
        return None
    return json.loads(body.decode("utf-8"))


class JsonRpcConnection:
    """JSON-RPC 2.0 connection to a server process."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        trace: bool = False,
    ):
        self.process = process
        self.reader = reader
        self.writer = writer
        self.request_timeout = request_timeout
        self.trace = trace
        self._request_id = 0
        self._pending_requests: dict[int, asyncio.Future[Any]] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._request_handlers: dict[str, RequestHandler] = {}
        self._response_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._closed = False
        self._server_logger = logging.getLogger(SERVER_LOGGER_NAME)

    @classmethod
    def from_process(cls, process: asyncio.subprocess.Process, **kwargs: Any) -> "JsonRpcConnection":
        if process.stdin is None or process.stdout is None:
            raise ConnectionClosedError("Server process has no stdio pipes")
        return cls(process=process, reader=process.stdout, writer=process.stdin, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a handler for a notification method.

        Args:
            method: LSP notification method name (e.g., "textDocument/publishDiagnostics")
            handler: Callback function that receives the params dict
        """
        self._notification_handlers[method] = handler

    def on_request(self, method: str, handler: RequestHandler) -> None:
        """Register a handler for a request sent by the server.

        The handler's return value (awaited if needed) becomes the result.
        Requests without a handler are answered with MethodNotFound.
        """
        self._request_handlers[method] = handler

    def start_listening(self) -> None:
        """Start background tasks reading stdout and stderr."""
        self._response_task = asyncio.create_task(self._response_listener())
        stderr = getattr(self.process, "stderr", None)
        if isinstance(stderr, asyncio.StreamReader):
            self._stderr_task = asyncio.create_task(self._stderr_listener(stderr))

    async def _response_listener(self) -> None:
        """Background task to read messages and dispatch them."""
        try:
            while not self._closed:
                try:
                    message = await read_message(self.reader)
                except (ValueError, UnicodeDecodeError) as e:
                    logger.error("Malformed message from server: %s", e)
                    break
                except (ConnectionError, OSError) as e:
                    logger.debug("Server stream failed: %s", e)
                    break
                if message is None:
                    break
                if self.trace:
                    logger.debug("<-- %s", message)
                await self._dispatch(message)
        finally:
            self._fail_pending(ConnectionClosedError("Connection to server closed"))

    async def _dispatch(self, message: dict) -> None:
        msg_id = message.get("id")
        method = message.get("method")

        if method is None:
            # Response to one of our requests
            future = self._pending_requests.pop(msg_id, None)
            if future is None or future.done():
                return
            if "error" in message:
                error = message["error"] or {}
                future.set_exception(
                    ResponseError(error.get("code", INTERNAL_ERROR), error.get("message", ""), error.get("data"))
                )
            else:
                future.set_result(message.get("result"))
        elif msg_id is None:
            handler = self._notification_handlers.get(method)
            if handler is None:
                logger.debug("Ignoring notification %s", method)
                return
            try:
                handler(message.get("params") or {})
            except Exception:
                logger.exception("Notification handler for %s failed", method)
        else:
            await self._answer_request(msg_id, method, message.get("params") or {})

    async def _answer_request(self, msg_id: Any, method: str, params: dict) -> None:
        handler = self._request_handlers.get(method)
        if handler is None:
            response: dict[str, Any] = {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": METHOD_NOT_FOUND, "message": f"Unhandled method {method}"},
            }
        else:
            try:
                result = handler(params)
                if inspect.isawaitable(result):
                    result = await result
                response = {"jsonrpc": "2.0", "id": msg_id, "result": result}
            except Exception as e:
                logger.exception("Request handler for %s failed", method)
                response = {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "error": {"code": INTERNAL_ERROR, "message": str(e)},
                }
        try:
            await self._write_message(response)
        except ConnectionClosedError:
            logger.debug("Could not answer %s: connection closed", method)

    async def _stderr_listener(self, stderr: asyncio.StreamReader) -> None:
        """Forward server stderr lines to the server logger."""
        while True:
            try:
                line = await stderr.readline()
            except (ConnectionError, OSError):
                return
            if not line:
                return
            text = line.decode("utf-8", errors="replace").rstrip()
            if text:
                self._server_logger.debug("%s", text)

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending_requests = self._pending_requests, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def _write_message(self, message: dict) -> None:
        """Write Content-Length framed JSON message to writer."""
        if self._closed:
            raise ConnectionClosedError("Connection to server is closed")
        if self.trace:
            logger.debug("--> %s", message)
        try:
            self.writer.write(encode_message(message))
            await self.writer.drain()
        except (ConnectionError, OSError, RuntimeError) as e:
            raise ConnectionClosedError(f"Failed to write to server: {e}") from e

    async def send_request(self, method: str, params: dict | None, timeout: float | None = None) -> Any:
        """Send JSON-RPC request and await response.

        Args:
            method: LSP method name
            params: Request parameters
            timeout: Seconds to wait; defaults to the connection's request timeout

        Returns:
            Response result

        Raises:
            RequestTimeoutError: If request times out
            ResponseError: If server returns error
            ConnectionClosedError: If the channel closes first
        """
        self._request_id += 1
        request_id = self._request_id

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        message: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
        }
        if params is not None:
            message["params"] = params

        try:
            await self._write_message(message)
        except ConnectionClosedError:
            self._pending_requests.pop(request_id, None)
            raise

        try:
            return await asyncio.wait_for(future, timeout=timeout or self.request_timeout)
        except asyncio.TimeoutError:
            self._pending_requests.pop(request_id, None)
            raise RequestTimeoutError(f"Request '{method}' timed out")

    async def send_notification(self, method: str, params: dict | None) -> None:
        """Send JSON-RPC notification (no response expected)."""
        message: dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": method,
        }
        if params is not None:
            message["params"] = params
        await self._write_message(message)

    async def close(self) -> None:
        """Close connection and terminate process."""
        if self._closed:
            return
        self._closed = True

        for task in (self._response_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._fail_pending(ConnectionClosedError("Connection to server closed"))

        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=WRITER_CLOSE_TIMEOUT_SECONDS)
        except (asyncio.TimeoutError, ConnectionError, OSError):
            pass

        await terminate_process(self.process)

    def kill(self) -> None:
        """Synchronous teardown for when no event loop time is left."""
        self._closed = True
        for task in (self._response_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
        self._fail_pending(ConnectionClosedError("Connection to server closed"))
        if self.process.returncode is None:
            try:
                self.process.kill()
            except ProcessLookupError:
                pass


async def terminate_process(process: asyncio.subprocess.Process) -> None:
    """Terminate a process, killing it if it does not exit in time."""
    if process.returncode is not None:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=PROCESS_EXIT_TIMEOUT_SECONDS / 2)
        return
    except asyncio.TimeoutError:
        pass
    try:
        process.terminate()
        await asyncio.wait_for(process.wait(), timeout=PROCESS_EXIT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
    except ProcessLookupError:
        pass
