"""Helpers shared by tests that talk to the fake language server."""
import asyncio
import json
import sys
from pathlib import Path

from config.client_config import ClientConfig

FAKE_SERVER = Path(__file__).parent / "fixtures" / "fake_lsp_server.py"


def read_records(path: Path) -> list[dict]:
    """Messages the fake server received, in order."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def received_methods(path: Path) -> list[str]:
    return [m.get("method") for m in read_records(path) if "method" in m]


def fake_server_config(*server_flags: str, record: Path | None = None, **overrides) -> ClientConfig:
    """ClientConfig launching the fake server with the current interpreter."""
    args = [str(FAKE_SERVER), *server_flags]
    if record is not None:
        args += ["--record", str(record)]
    values = {
        "server_path": sys.executable,
        "server_args": args,
        "initialize_timeout": 5.0,
        "request_timeout": 2.0,
        "shutdown_timeout": 2.0,
    }
    values.update(overrides)
    return ClientConfig(**values)


async def until(predicate, timeout: float = 5.0) -> None:
    """Yield to the loop until predicate() holds."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout=timeout)
