"""
Document and watch scope declarations.

A document selector decides which open documents are synchronized to the
server; watch patterns decide which filesystem events are forwarded. Patterns
use gitwildmatch semantics (pathspec), so ``**/*.lua`` matches a ``.lua`` file
at any depth. Only the file itself matches, never paths below a directory
that happens to match.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable
from urllib.parse import quote, unquote, urlparse

import pathspec

FILE_SCHEME = "file"


@lru_cache(maxsize=128)
def _compile(pattern: str) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitwildmatch", [pattern])


def _normalize(path: str) -> str:
    return path.replace("\\", "/").lstrip("/")


def glob_matches(pattern: str, path: str) -> bool:
    """Check a filesystem path against a single glob pattern."""
    normalized = _normalize(path)
    if not _compile(pattern).match_file(normalized):
        return False
    # gitwildmatch also accepts anything under a matching directory; the
    # last pattern segment must match the file name itself
    last_segment = pattern.rstrip("/").rsplit("/", 1)[-1]
    return _compile(last_segment).match_file(normalized.rsplit("/", 1)[-1])


def split_uri(uri_or_path: str) -> tuple[str, str]:
    """Split a document reference into (scheme, path).

    Plain paths are treated as ``file`` scheme documents.
    """
    parsed = urlparse(uri_or_path)
    # Single-letter schemes are Windows drive letters, not URI schemes
    if parsed.scheme and len(parsed.scheme) > 1:
        if parsed.scheme == FILE_SCHEME:
            return FILE_SCHEME, unquote(parsed.path)
        return parsed.scheme, unquote(parsed.path or parsed.netloc)
    return FILE_SCHEME, uri_or_path


@dataclass(frozen=True)
class DocumentFilter:
    """One entry of a document selector.

    Attributes:
        scheme: URI scheme the document must use (e.g. "file")
        pattern: Glob the document path must match
        language: Optional content-language tag the document must carry
    """

    scheme: str | None = FILE_SCHEME
    pattern: str | None = None
    language: str | None = None

    def matches(self, uri_or_path: str, language_id: str | None = None) -> bool:
        scheme, path = split_uri(uri_or_path)
        if self.scheme is not None and scheme != self.scheme:
            return False
        if self.pattern is not None and not glob_matches(self.pattern, path):
            return False
        # A language tag only filters documents that declare one
        if self.language is not None and language_id is not None:
            return language_id == self.language
        return True

    def to_dict(self) -> dict[str, str]:
        data = {}
        if self.language is not None:
            data["language"] = self.language
        if self.scheme is not None:
            data["scheme"] = self.scheme
        if self.pattern is not None:
            data["pattern"] = self.pattern
        return data


@dataclass(frozen=True)
class DocumentSelector:
    """A set of document filters; a document is in scope if any filter matches."""

    filters: tuple[DocumentFilter, ...]

    def matches(self, uri_or_path: str, language_id: str | None = None) -> bool:
        return any(f.matches(uri_or_path, language_id) for f in self.filters)

    def to_list(self) -> list[dict[str, str]]:
        return [f.to_dict() for f in self.filters]

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(f.pattern for f in self.filters if f.pattern is not None)


def extension_pattern(extension: str) -> str:
    """Glob covering every file with the given extension in the workspace."""
    return f"**/*.{extension.lstrip('.')}"


def source_selector(extension: str, language_id: str | None = None) -> DocumentSelector:
    """Selector for local files with the given extension."""
    return DocumentSelector(
        filters=(
            DocumentFilter(
                scheme=FILE_SCHEME,
                pattern=extension_pattern(extension),
                language=language_id,
            ),
        )
    )


def watch_covers(
    watch_patterns: Iterable[str],
    selector: DocumentSelector,
    samples: Iterable[str] | None = None,
) -> bool:
    """Check that the watch scope includes the document scope.

    Every selector pattern must also appear among the watch patterns, or, when
    sample paths are supplied, every sample the selector accepts must be
    matched by some watch pattern.
    """
    watch_patterns = tuple(watch_patterns)
    if samples is None:
        return all(p in watch_patterns for p in selector.patterns)
    for sample in samples:
        if selector.matches(sample):
            _, path = split_uri(sample)
            if not any(glob_matches(p, path) for p in watch_patterns):
                return False
    return True


def file_uri(path: str) -> str:
    """Convert an absolute filesystem path to a file:// URI."""
    posix = str(path).replace("\\", "/")
    if not posix.startswith("/"):
        posix = "/" + posix
    return "file://" + quote(posix, safe="/:")
