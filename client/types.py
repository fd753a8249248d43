"""LSP value types used by the client."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class TransportKind(str, Enum):
    """How the channel to the server is transported."""
    STDIO = "stdio"
    PIPE = "pipe"
    SOCKET = "socket"


@dataclass(frozen=True)
class ServerOptions:
    """How to launch the server process.

    Attributes:
        command: Executable to spawn
        args: Arguments passed to the executable
        transport: Channel transport; only STDIO can be driven by LanguageClient
        cwd: Working directory of the server process
        env: Extra environment variables for the server process
    """
    command: str
    args: tuple[str, ...] = ()
    transport: TransportKind = TransportKind.STDIO
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass
class Position:
    """0-based line and character position."""
    line: int
    character: int

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass
class Range:
    """Range with start and end positions."""
    start: Position
    end: Position

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "Range":
        return cls(
            start=Position(data["start"]["line"], data["start"]["character"]),
            end=Position(data["end"]["line"], data["end"]["character"]),
        )


class DiagnosticSeverity(IntEnum):
    """LSP diagnostic severity levels."""
    ERROR = 1
    WARNING = 2
    INFO = 3
    HINT = 4


class MessageType(IntEnum):
    """LSP window message types."""
    ERROR = 1
    WARNING = 2
    INFO = 3
    LOG = 4


@dataclass
class Diagnostic:
    """A single diagnostic published by the server.

    Attributes:
        range: Location of the diagnostic in the file
        severity: Error, warning, info, or hint
        message: The diagnostic message
        source: Name of the source (e.g., "lunalint")
        code: Optional diagnostic code
    """
    range: Range
    severity: DiagnosticSeverity
    message: str
    source: str = ""
    code: str | int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Diagnostic":
        """Parse Diagnostic from LSP JSON."""
        range_data = data.get("range", {"start": {"line": 0, "character": 0},
                                         "end": {"line": 0, "character": 0}})
        severity = DiagnosticSeverity(data.get("severity") or DiagnosticSeverity.ERROR)
        return cls(
            range=Range.from_dict(range_data),
            severity=severity,
            message=data.get("message", ""),
            source=data.get("source") or "",
            code=data.get("code"),
        )

    def pretty_format(self) -> str:
        """Format diagnostic as human-readable string."""
        severity_names = {
            DiagnosticSeverity.ERROR: "ERROR",
            DiagnosticSeverity.WARNING: "WARN",
            DiagnosticSeverity.INFO: "INFO",
            DiagnosticSeverity.HINT: "HINT",
        }
        severity_str = severity_names.get(self.severity, "ERROR")
        # Convert to 1-based for display
        line = self.range.start.line + 1
        col = self.range.start.character + 1
        source_str = f"[{self.source}] " if self.source else ""
        return f"{severity_str} {source_str}[{line}:{col}] {self.message}"
