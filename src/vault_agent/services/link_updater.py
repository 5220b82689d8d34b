"""Rewrite links in other notes after a note is renamed or moved."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Sequence, Tuple
from urllib.parse import quote

from ..models.operations import Operation, OperationKind
from .file_store import NOTE_SUFFIX, FileStore, name_of

logger = logging.getLogger(__name__)


def _strip_suffix(path: str) -> str:
    return path[: -len(NOTE_SUFFIX)] if path.endswith(NOTE_SUFFIX) else path


def rewrite_links(content: str, old_path: str, new_path: str) -> str:
    """Return ``content`` with links to ``old_path`` pointing at ``new_path``.

    Handles ``[[name]]``, ``[[name|alias]]``, ``[[folder/name]]``,
    ``[text](folder/name.md)`` and the URL-encoded markdown form.
    """
    old_name = _strip_suffix(name_of(old_path))
    new_name = _strip_suffix(name_of(new_path))
    old_stem = _strip_suffix(old_path)
    new_stem = _strip_suffix(new_path)

    def wiki(target: str, replacement: str, text: str) -> str:
        pattern = re.compile(r"\[\[" + re.escape(target) + r"(#[^\]|]*)?(\|[^\]]*)?\]\]")
        return pattern.sub(
            lambda m: f"[[{replacement}{m.group(1) or ''}{m.group(2) or ''}]]", text
        )

    updated = wiki(old_name, new_name, content)
    if old_stem != old_name:
        updated = wiki(old_stem, new_stem, updated)

    for old_target, new_target in (
        (old_path, new_path),
        (quote(old_path, safe=""), quote(new_path, safe="")),
    ):
        pattern = re.compile(r"\[([^\]]*)\]\(" + re.escape(old_target) + r"\)")
        updated = pattern.sub(lambda m: f"[{m.group(1)}]({new_target})", updated)
    return updated


class LinkUpdater:
    """Plans link rewrites as ``modify`` operations."""

    def __init__(self, store: FileStore) -> None:
        self.store = store

    async def plan_updates(self, moves: Sequence[Tuple[str, str]]) -> List[Operation]:
        """Build modify operations for every note linking to a moved path.

        ``moves`` holds ``(old_path, new_path)`` pairs. Must run before the
        move itself so backlinks still resolve against the old paths.
        """
        originals: Dict[str, str] = {}
        rewritten: Dict[str, str] = {}
        for old_path, new_path in moves:
            for source in await self.store.backlinks(old_path):
                if source not in originals:
                    originals[source] = await self.store.read(source)
                current = rewritten.get(source, originals[source])
                rewritten[source] = rewrite_links(current, old_path, new_path)

        ops = [
            Operation(kind=OperationKind.MODIFY, source_path=source, content=content)
            for source, content in rewritten.items()
            if content != originals[source]
        ]
        if ops:
            logger.info(
                f"Updating links in {len(ops)} note(s)",
                extra={"moved": [old for old, _ in moves]},
            )
        return ops


__all__ = ["LinkUpdater", "rewrite_links"]
