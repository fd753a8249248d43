"""Tests for the open-document workspace."""

from unittest.mock import MagicMock

import pytest

from core.exceptions import NotFoundError
from host.workspace import TextDocument, Workspace, get_language_id


class TestLanguageId:
    def test_known_extensions(self):
        assert get_language_id("/p/main.lua") == "lua"
        assert get_language_id("/p/pkg-1.0-1.rockspec") == "lua"
        assert get_language_id("/p/MAIN.LUA") == "lua"

    def test_unknown_extension(self):
        assert get_language_id("/p/notes.xyz") == "plaintext"


class TestTextDocument:
    def test_to_item(self):
        doc = TextDocument(path="/p/main.lua", language_id="lua", version=0, text="return 1")
        assert doc.to_item() == {
            "uri": "file:///p/main.lua",
            "languageId": "lua",
            "version": 0,
            "text": "return 1",
        }


class TestWorkspace:
    def test_open_reads_from_disk(self, workspace, lua_file):
        listener = MagicMock()
        workspace.on_did_open(listener)

        doc = workspace.open_document(lua_file)

        assert doc.path == str(lua_file)
        assert doc.text == lua_file.read_text()
        assert doc.language_id == "lua"
        assert doc.version == 0
        listener.assert_called_once_with(doc)

    def test_relative_paths_resolve_against_root(self, workspace, lua_file):
        doc = workspace.open_document("src/main.lua")
        assert workspace.get_document(lua_file) is doc

    def test_open_twice_returns_same_document(self, workspace, lua_file):
        listener = MagicMock()
        workspace.on_did_open(listener)
        first = workspace.open_document(lua_file)
        assert workspace.open_document(lua_file, text="other") is first
        listener.assert_called_once()

    def test_open_missing_file(self, workspace, temp_dir):
        with pytest.raises(FileNotFoundError):
            workspace.open_document(temp_dir / "missing.lua")

    def test_change_bumps_version(self, workspace, lua_file):
        listener = MagicMock()
        workspace.on_did_change(listener)
        workspace.open_document(lua_file)

        doc = workspace.change_document(lua_file, "return 2")

        assert doc.version == 1
        assert doc.text == "return 2"
        listener.assert_called_once_with(doc)

    def test_save_writes_to_disk(self, workspace, lua_file):
        listener = MagicMock()
        workspace.on_did_save(listener)
        workspace.open_document(lua_file)
        workspace.change_document(lua_file, "return 3\n")

        workspace.save_document(lua_file)

        assert lua_file.read_text() == "return 3\n"
        listener.assert_called_once()

    def test_reload_picks_up_external_edit(self, workspace, lua_file):
        changed, saved = MagicMock(), MagicMock()
        workspace.on_did_change(changed)
        workspace.on_did_save(saved)
        workspace.open_document(lua_file)

        lua_file.write_text("return 4\n")
        doc = workspace.reload_document(lua_file)

        assert doc.text == "return 4\n"
        changed.assert_called_once()
        saved.assert_called_once()

    def test_reload_unchanged_only_saves(self, workspace, lua_file):
        changed, saved = MagicMock(), MagicMock()
        workspace.on_did_change(changed)
        workspace.on_did_save(saved)
        workspace.open_document(lua_file)

        workspace.reload_document(lua_file)

        changed.assert_not_called()
        saved.assert_called_once()

    def test_close(self, workspace, lua_file):
        listener = MagicMock()
        workspace.on_did_close(listener)
        workspace.open_document(lua_file)

        workspace.close_document(lua_file)
        workspace.close_document(lua_file)

        assert workspace.documents == []
        listener.assert_called_once()

    def test_operations_on_unopened_document(self, workspace, lua_file):
        with pytest.raises(NotFoundError):
            workspace.change_document(lua_file, "x")
        with pytest.raises(NotFoundError):
            workspace.save_document(lua_file)

    def test_listener_disposal_and_failures(self, workspace, lua_file):
        received = []
        workspace.on_did_open(MagicMock(side_effect=RuntimeError("boom")))
        subscription = workspace.on_did_open(received.append)
        subscription.dispose()
        workspace.on_did_open(received.append)

        workspace.open_document(lua_file)
        assert len(received) == 1
