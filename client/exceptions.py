"""Exceptions raised by the language client channel."""


class ClientError(Exception):
    """Base exception for language client errors."""
    pass


class ClientStartError(ClientError):
    """The server process could not be spawned."""
    pass


class HandshakeError(ClientError):
    """The server failed the initialize handshake."""
    pass


class ConnectionClosedError(ClientError):
    """The channel to the server closed."""
    pass


class RequestTimeoutError(ClientError):
    """Request timed out."""
    pass


class ResponseError(ClientError):
    """The server answered a request with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: object = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"LSP error {code}: {message}")
