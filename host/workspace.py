"""
Open-document workspace for hosts.

Tracks the documents an editor has open and notifies listeners when they are
opened, changed, saved or closed. The language client subscribes to these
events to drive textDocument synchronization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from core.exceptions import NotFoundError
from core.scope import file_uri

from .disposable import Disposable

logger = logging.getLogger(__name__)

# Extension to language ID mapping for LSP
EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".lua": "lua",
    ".luau": "luau",
    ".rockspec": "lua",
    ".json": "json",
    ".jsonc": "jsonc",
    ".toml": "toml",
    ".md": "markdown",
}


def get_language_id(path: str | Path) -> str:
    """Get LSP language ID from a file's extension."""
    return EXTENSION_TO_LANGUAGE.get(Path(path).suffix.lower(), "plaintext")


@dataclass
class TextDocument:
    """An open document as seen by the host."""
    path: str
    language_id: str
    version: int
    text: str

    @property
    def uri(self) -> str:
        return file_uri(self.path)

    def to_item(self) -> dict:
        """LSP TextDocumentItem."""
        return {
            "uri": self.uri,
            "languageId": self.language_id,
            "version": self.version,
            "text": self.text,
        }


DocumentListener = Callable[[TextDocument], None]


class Workspace:
    """Open documents keyed by absolute path."""

    EVENTS = ("open", "change", "save", "close")

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root).resolve() if root is not None else Path.cwd()
        self._documents: dict[str, TextDocument] = {}
        self._listeners: dict[str, list[DocumentListener]] = {e: [] for e in self.EVENTS}

    # --- Queries ---

    @property
    def documents(self) -> list[TextDocument]:
        return list(self._documents.values())

    def get_document(self, path: str | Path) -> TextDocument | None:
        return self._documents.get(self._key(path))

    def _key(self, path: str | Path) -> str:
        path = Path(path)
        if not path.is_absolute():
            path = self.root / path
        return str(path.resolve())

    def _require(self, path: str | Path) -> TextDocument:
        document = self.get_document(path)
        if document is None:
            raise NotFoundError("Document", str(path))
        return document

    # --- Events ---

    def _subscribe(self, event: str, listener: DocumentListener) -> Disposable:
        listeners = self._listeners[event]
        listeners.append(listener)

        def remove() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return Disposable(remove)

    def on_did_open(self, listener: DocumentListener) -> Disposable:
        return self._subscribe("open", listener)

    def on_did_change(self, listener: DocumentListener) -> Disposable:
        return self._subscribe("change", listener)

    def on_did_save(self, listener: DocumentListener) -> Disposable:
        return self._subscribe("save", listener)

    def on_did_close(self, listener: DocumentListener) -> Disposable:
        return self._subscribe("close", listener)

    def _emit(self, event: str, document: TextDocument) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(document)
            except Exception:
                logger.exception("Document %s listener failed for %s", event, document.path)

    # --- Mutations ---

    def open_document(
        self,
        path: str | Path,
        text: str | None = None,
        language_id: str | None = None,
    ) -> TextDocument:
        """Open a document, reading it from disk when no text is given.

        Opening an already open document returns it unchanged.
        """
        key = self._key(path)
        existing = self._documents.get(key)
        if existing is not None:
            return existing

        if text is None:
            text = Path(key).read_text(encoding="utf-8")
        document = TextDocument(
            path=key,
            language_id=language_id or get_language_id(key),
            version=0,
            text=text,
        )
        self._documents[key] = document
        self._emit("open", document)
        return document

    def change_document(self, path: str | Path, text: str) -> TextDocument:
        """Replace a document's full text and bump its version."""
        document = self._require(path)
        document.text = text
        document.version += 1
        self._emit("change", document)
        return document

    def save_document(self, path: str | Path) -> TextDocument:
        """Write a document to disk and announce the save."""
        document = self._require(path)
        Path(document.path).write_text(document.text, encoding="utf-8")
        self._emit("save", document)
        return document

    def reload_document(self, path: str | Path) -> TextDocument:
        """Pick up an external edit: re-read from disk, then announce change and save."""
        document = self._require(path)
        text = Path(document.path).read_text(encoding="utf-8")
        if text != document.text:
            self.change_document(document.path, text)
        self._emit("save", document)
        return document

    def close_document(self, path: str | Path) -> None:
        document = self._documents.pop(self._key(path), None)
        if document is not None:
            self._emit("close", document)
