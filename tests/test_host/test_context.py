"""Tests for the activation context."""

import os

import pytest

from core.events import NullEventBus
from core.exceptions import ResolutionError
from host.context import ActivationContext
from host.disposable import Disposable
from host.workspace import Workspace


class TestActivationContext:
    def test_defaults(self, temp_dir):
        context = ActivationContext(extension_path=temp_dir)
        assert context.extension_path == str(temp_dir)
        assert context.workspace_root == context.workspace.root
        assert isinstance(context.event_bus, NullEventBus)
        assert context.subscriptions == []

    def test_as_absolute_path(self):
        context = ActivationContext(extension_path="/ext", workspace=Workspace("/"))
        path = context.as_absolute_path("../target/debug/lunalintd")
        assert path == os.path.normpath(os.path.join(os.path.abspath("/ext"), "../target/debug/lunalintd"))
        assert os.path.isabs(path)

    def test_as_absolute_path_requires_root(self, workspace):
        context = ActivationContext(extension_path="", workspace=workspace)
        with pytest.raises(ResolutionError):
            context.as_absolute_path("lunalintd")

    def test_register_command(self, context):
        disposable = context.register_command("lunalint.activate", lambda: None)
        assert context.commands.has_command("lunalint.activate")
        disposable.dispose()
        assert not context.commands.has_command("lunalint.activate")

    def test_create_file_system_watcher(self, context, temp_dir):
        watcher = context.create_file_system_watcher("**/*.lua")
        try:
            assert watcher.root == temp_dir
            assert watcher.glob_pattern == "**/*.lua"
            assert watcher.is_running
        finally:
            watcher.dispose()

    def test_dispose_releases_in_reverse_order(self, context):
        order = []
        context.subscriptions.append(Disposable(lambda: order.append("watcher")))
        context.subscriptions.append(Disposable(lambda: order.append("client")))

        context.dispose()

        assert order == ["client", "watcher"]
        assert context.subscriptions == []

    def test_dispose_continues_after_failure(self, context):
        released = []

        def fail():
            raise RuntimeError("boom")

        context.subscriptions.append(Disposable(lambda: released.append(1)))
        context.subscriptions.append(Disposable(fail))

        context.dispose()
        assert released == [1]
