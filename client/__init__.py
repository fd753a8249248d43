"""
Language client for the lunalint server.

JSON-RPC 2.0 over stdio with Content-Length framing, plus the LanguageClient
that drives one server session from spawn to shutdown.
"""

from .connection import JsonRpcConnection, encode_message, read_message
from .exceptions import (
    ClientError,
    ClientStartError,
    ConnectionClosedError,
    HandshakeError,
    RequestTimeoutError,
    ResponseError,
)
from .language_client import ClientOptions, ClientState, LanguageClient
from .types import (
    Diagnostic,
    DiagnosticSeverity,
    MessageType,
    Position,
    Range,
    ServerOptions,
    TransportKind,
)

__all__ = [
    "ClientError",
    "ClientOptions",
    "ClientStartError",
    "ClientState",
    "ConnectionClosedError",
    "Diagnostic",
    "DiagnosticSeverity",
    "HandshakeError",
    "JsonRpcConnection",
    "LanguageClient",
    "MessageType",
    "Position",
    "Range",
    "RequestTimeoutError",
    "ResponseError",
    "ServerOptions",
    "TransportKind",
    "encode_message",
    "read_message",
]
