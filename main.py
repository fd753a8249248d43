"""
Terminal host for the lunalint client.

Activates a session for a workspace, opens the given files and prints the
diagnostics the server publishes. Runs until interrupted unless --once is set.
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from client.types import Diagnostic, DiagnosticSeverity
from config.loader import load_config
from core.session import SessionManager
from host.context import ActivationContext
from host.logging_config import setup_logging
from host.workspace import Workspace

logger = logging.getLogger(__name__)

# Constants
DEFAULT_EXTENSION_ROOT = Path(__file__).resolve().parent
DEFAULT_ONCE_TIMEOUT = 10.0
DEACTIVATE_TIMEOUT_SECONDS = 5.0
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)

EXIT_OK = 0
EXIT_DIAGNOSTIC_ERRORS = 1
EXIT_START_FAILED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lunalint-client",
        description="Run the lunalint server over a workspace and print its diagnostics",
    )
    parser.add_argument("files", nargs="*", metavar="FILE", help="Files to open")
    parser.add_argument("--workspace", type=Path, default=Path.cwd(),
                        help="Workspace root (default: current directory)")
    parser.add_argument("--extension-root", type=Path, default=DEFAULT_EXTENSION_ROOT,
                        help="Installation root the server path is resolved against")
    parser.add_argument("--server", type=str, help="Server executable, overriding the configured one")
    parser.add_argument("--log-level", type=str, help="Log level (default: LUNALINT_LOG_LEVEL or INFO)")
    parser.add_argument("--once", action="store_true",
                        help="Stop after diagnostics arrived for every opened file")
    parser.add_argument("--timeout", type=float, default=DEFAULT_ONCE_TIMEOUT,
                        help="Seconds --once waits for diagnostics")
    return parser


def format_diagnostics(path: str, diagnostics: list[Diagnostic], root: Path) -> list[str]:
    """One output line per diagnostic, with paths relative to the workspace."""
    try:
        display = os.path.relpath(path, root)
    except ValueError:
        # Different drive on Windows
        display = path
    return [f"{display}: {d.pretty_format()}" for d in diagnostics]


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> list[int]:
    installed = []
    for sig in STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Not supported by the Windows event loop
            continue
        installed.append(sig)
    return installed


async def run(args: argparse.Namespace) -> int:
    """Drive one session and return the process exit code."""
    workspace = Workspace(args.workspace)
    context = ActivationContext(extension_path=args.extension_root, workspace=workspace)

    try:
        config = load_config(workspace.root)
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_START_FAILED
    if args.server:
        config = config.model_copy(update={"server_path": args.server})

    manager = SessionManager(config)
    manager.activate(context)

    ready = manager.on_ready()
    if ready is None:
        context.dispose()
        return EXIT_START_FAILED
    try:
        await ready
    except Exception:
        # Already logged by the session manager
        context.dispose()
        return EXIT_START_FAILED

    client = manager.client
    assert client is not None
    done = asyncio.Event()
    waiting: set[str] = set()
    found_errors = False

    def print_diagnostics(path: str, diagnostics: list[Diagnostic]) -> None:
        nonlocal found_errors
        for line in format_diagnostics(path, diagnostics, workspace.root):
            print(line, flush=True)
        found_errors = found_errors or any(d.severity == DiagnosticSeverity.ERROR for d in diagnostics)
        waiting.discard(path)
        if args.once and not waiting:
            done.set()

    context.subscriptions.append(client.on_diagnostics(print_diagnostics))

    selector = client.options.document_selector
    for name in args.files:
        try:
            document = workspace.open_document(name)
            if not selector.matches(document.path, document.language_id):
                logger.warning("%s is not a %s source file; skipped", name, client.name)
                continue
            # The server lints on save; announce one without touching the file
            workspace.reload_document(document.path)
        except OSError as e:
            logger.error("Cannot open %s: %s", name, e)
            continue
        waiting.add(os.path.realpath(document.path))

    loop = asyncio.get_running_loop()
    installed = _install_signal_handlers(loop, done)
    try:
        if args.once:
            if not waiting:
                done.set()
            try:
                await asyncio.wait_for(done.wait(), timeout=args.timeout)
            except asyncio.TimeoutError:
                logger.warning("No diagnostics for %d file(s) after %.1fs", len(waiting), args.timeout)
        else:
            logger.info("Watching %s; press Ctrl+C to stop", workspace.root)
            await done.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)

    stop = manager.deactivate(timeout=DEACTIVATE_TIMEOUT_SECONDS)
    if stop is not None:
        await stop
    context.dispose()
    return EXIT_DIAGNOSTIC_ERRORS if found_errors else EXIT_OK


def main(argv: Optional[list[str]] = None) -> None:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
