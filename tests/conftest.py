"""
Shared pytest fixtures for all tests.
"""
import tempfile
from pathlib import Path
from typing import Iterator

import pytest

from host.context import ActivationContext
from host.workspace import Workspace


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def lua_file(temp_dir: Path) -> Path:
    """A Lua source file with one bad line."""
    file_path = temp_dir / "src" / "main.lua"
    file_path.parent.mkdir()
    file_path.write_text("local ok = 1\nlocal bad = 2\n")
    return file_path


@pytest.fixture
def record_file(temp_dir: Path) -> Path:
    """File the fake server appends received messages to."""
    return temp_dir / "received.jsonl"


@pytest.fixture
def workspace(temp_dir: Path) -> Workspace:
    return Workspace(temp_dir)


@pytest.fixture
def context(temp_dir: Path, workspace: Workspace) -> Iterator[ActivationContext]:
    """Activation context rooted at temp_dir, disposed after the test."""
    ctx = ActivationContext(extension_path=temp_dir / "extension", workspace=workspace)
    yield ctx
    ctx.dispose()


@pytest.fixture
def clean_env(monkeypatch, temp_dir: Path):
    """Isolate config loading from the user's environment and home directory."""
    monkeypatch.delenv("LUNALINT_SERVER_PATH", raising=False)
    monkeypatch.delenv("LUNALINT_LOG_LEVEL", raising=False)
    monkeypatch.setenv("HOME", str(temp_dir / "home"))
    monkeypatch.setenv("USERPROFILE", str(temp_dir / "home"))
    return monkeypatch
