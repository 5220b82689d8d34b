"""Keyword search over vault notes, limited by a context scope."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
import re
from typing import List, Optional

import frontmatter

from ..models.agent import ContextScope
from ..models.search import LineMatch, SearchResult
from .file_store import FileStore, name_of, normalize_path, parent_of

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 3
CONTEXT_LINES = 2
MAX_MATCHES_PER_FILE = 5
H1_PATTERN = re.compile(r"^\s*#\s+(.+)$", re.MULTILINE)


def search_terms(query: str) -> List[str]:
    """Lower-cased whitespace-separated terms longer than two characters."""
    return [term for term in query.lower().split() if len(term) >= MIN_TERM_LENGTH]


def derive_title(note_path: str, content: str) -> str:
    """Title from frontmatter, then the first H1, then the file name."""
    try:
        post = frontmatter.loads(content)
        metadata, body = post.metadata, post.content
    except Exception:
        metadata, body = {}, content
    title = metadata.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    match = H1_PATTERN.search(body or "")
    if match:
        return match.group(1).strip()
    stem = PurePosixPath(note_path).stem
    return stem.replace("-", " ").replace("_", " ").strip() or stem


def find_matches(content: str, terms: List[str]) -> List[LineMatch]:
    lines = content.split("\n")
    matches: List[LineMatch] = []
    for index, line in enumerate(lines):
        lowered = line.lower()
        if not any(term in lowered for term in terms):
            continue
        start = max(0, index - CONTEXT_LINES)
        end = min(len(lines), index + CONTEXT_LINES + 1)
        matches.append(
            LineMatch(line=index + 1, content=line.strip(), context="\n".join(lines[start:end]))
        )
        if len(matches) == MAX_MATCHES_PER_FILE:
            break
    return matches


class VaultSearch:
    """Searches note contents within a context scope."""

    def __init__(self, store: FileStore) -> None:
        self.store = store

    async def search(
        self,
        query: str,
        scope: ContextScope = ContextScope.VAULT,
        current_path: Optional[str] = None,
    ) -> List[SearchResult]:
        terms = search_terms(query)
        if not terms:
            return []
        results: List[SearchResult] = []
        for path in await self.files_in_scope(scope, current_path):
            content = await self.store.read(path)
            matches = find_matches(content, terms)
            if matches:
                results.append(
                    SearchResult(
                        file_path=path,
                        file_name=name_of(path),
                        title=derive_title(path, content),
                        matches=matches,
                    )
                )
        results.sort(key=lambda result: len(result.matches), reverse=True)
        logger.debug(
            f"Search matched {len(results)} file(s)",
            extra={"query": query, "scope": scope.value, "terms": terms},
        )
        return results

    async def _current(self, current_path: Optional[str]) -> Optional[str]:
        path = normalize_path(current_path) if current_path else await self.store.active_document()
        if path and await self.store.stat(path) == "file":
            return path
        return None

    async def files_in_scope(
        self, scope: ContextScope, current_path: Optional[str] = None
    ) -> List[str]:
        if scope == ContextScope.VAULT:
            return await self.store.list_markdown_files()

        current = await self._current(current_path)

        if scope == ContextScope.CURRENT:
            return [current] if current else []

        if scope == ContextScope.LINKED:
            if not current:
                return []
            linked = [current]
            for path in await self.store.outgoing_links(current) + await self.store.backlinks(current):
                if path not in linked:
                    linked.append(path)
            return linked

        # Folder scope falls back to the whole vault without a current note.
        all_files = await self.store.list_markdown_files()
        if not current:
            return all_files
        folder = parent_of(current)
        return [path for path in all_files if parent_of(path) == folder]


__all__ = ["VaultSearch", "derive_title", "find_matches", "search_terms"]
