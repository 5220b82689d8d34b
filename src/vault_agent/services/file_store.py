"""Filesystem-backed document store for a Markdown vault."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path, PurePosixPath
import re
import shutil
from typing import Any, Dict, List, Literal, Optional, Protocol
from urllib.parse import unquote

from .config import AppConfig, get_config

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"
TRASH_DIR = ".trash"

WIKILINK_PATTERN = re.compile(r"\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")
MDLINK_PATTERN = re.compile(r"\[[^\]]*\]\(([^)\s]+)\)")

EntryKind = Literal["file", "folder"]


class FileStoreError(Exception):
    """Raised when a file-store operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NoteNotFoundError(FileStoreError):
    """Raised when a path does not exist."""


class NoteExistsError(FileStoreError):
    """Raised when a path is already taken."""


class PathEscapeError(FileStoreError):
    """Raised when a path resolves outside the vault root."""


@dataclass(frozen=True)
class VaultEntry:
    """A direct child of a folder."""
    name: str
    path: str
    is_folder: bool


def normalize_path(path: Optional[str]) -> str:
    """Normalize a user-supplied path to a vault-relative POSIX string.

    ``""`` denotes the vault root. Leading and trailing slashes are dropped
    and ``"/"`` or ``"."`` map to the root.
    """
    cleaned = (path or "").strip().replace("\\", "/")
    if cleaned in ("/", "."):
        return ""
    parts = [part for part in cleaned.split("/") if part and part != "."]
    return "/".join(parts)


def parent_of(path: str) -> str:
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def name_of(path: str) -> str:
    return PurePosixPath(path).name


def join_path(folder: str, name: str) -> str:
    return f"{folder}/{name}" if folder else name


class FileStore(Protocol):
    """Capabilities the agent needs from a document store.

    All paths are vault-relative POSIX strings; ``""`` is the root.
    """

    async def read(self, path: str) -> str: ...

    async def create(self, path: str, text: str) -> None: ...

    async def modify(self, path: str, text: str) -> None: ...

    async def rename(self, path: str, new_path: str) -> None: ...

    async def trash(self, path: str) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def create_folder(self, path: str) -> None: ...

    async def list(self, folder: str) -> List[VaultEntry]: ...

    async def exists(self, path: str) -> bool: ...

    async def stat(self, path: str) -> Optional[EntryKind]: ...

    async def list_markdown_files(self, folder: Optional[str] = None) -> List[str]: ...

    async def active_document(self) -> Optional[str]: ...

    async def backlinks(self, path: str) -> List[str]: ...

    async def outgoing_links(self, path: str) -> List[str]: ...


class LocalVaultStore:
    """FileStore implementation over a local directory tree."""

    def __init__(
        self,
        root: Optional[Path] = None,
        config: Optional[AppConfig] = None,
        active_path: Optional[str] = None,
    ) -> None:
        if root is None:
            root = (config or get_config()).vault_path
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.active_path = normalize_path(active_path) or None

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Resolve a vault path, refusing anything outside the root."""
        relative = normalize_path(path)
        full_path = (self.root / relative).resolve()
        if full_path != self.root and self.root not in full_path.parents:
            raise PathEscapeError(f"Path escapes vault root: {path}", {"path": path})
        return full_path

    def _relative(self, full_path: Path) -> str:
        return full_path.relative_to(self.root).as_posix()

    @staticmethod
    def _is_hidden(relative: str) -> bool:
        return any(part.startswith(".") for part in relative.split("/"))

    def _require_file(self, path: str) -> Path:
        full_path = self.resolve(path)
        if not full_path.is_file():
            raise NoteNotFoundError(f"File not found: {path}", {"path": path})
        return full_path

    # ------------------------------------------------------------------
    # FileStore protocol
    # ------------------------------------------------------------------

    async def read(self, path: str) -> str:
        return self._require_file(path).read_text(encoding="utf-8")

    async def create(self, path: str, text: str) -> None:
        full_path = self.resolve(path)
        if full_path.exists():
            raise NoteExistsError(f"File already exists: {path}", {"path": path})
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(text, encoding="utf-8")
        logger.debug("Created file", extra={"path": path})

    async def modify(self, path: str, text: str) -> None:
        self._require_file(path).write_text(text, encoding="utf-8")
        logger.debug("Modified file", extra={"path": path})

    async def rename(self, path: str, new_path: str) -> None:
        source = self.resolve(path)
        target = self.resolve(new_path)
        if source == self.root:
            raise FileStoreError("Cannot move the vault root")
        if not source.exists():
            raise NoteNotFoundError(f"File not found: {path}", {"path": path})
        if target.exists():
            raise NoteExistsError(f"A file already exists at {new_path}", {"path": new_path})
        target.parent.mkdir(parents=True, exist_ok=True)
        source.rename(target)
        logger.debug("Renamed", extra={"path": path, "new_path": new_path})

    async def trash(self, path: str) -> None:
        source = self.resolve(path)
        if source == self.root or not source.exists():
            raise NoteNotFoundError(f"File not found: {path}", {"path": path})
        trash_root = self.root / TRASH_DIR
        trash_root.mkdir(exist_ok=True)
        target = trash_root / source.name
        counter = 1
        while target.exists():
            target = trash_root / f"{source.stem} {counter}{source.suffix}"
            counter += 1
        shutil.move(str(source), str(target))
        logger.debug("Trashed", extra={"path": path, "trash_path": str(target)})

    async def delete(self, path: str) -> None:
        full_path = self.resolve(path)
        if full_path == self.root:
            raise FileStoreError("Cannot delete the vault root")
        if full_path.is_dir():
            if any(full_path.iterdir()):
                raise FileStoreError(f"Folder is not empty: {path}", {"path": path})
            full_path.rmdir()
        elif full_path.is_file():
            full_path.unlink()
        else:
            raise NoteNotFoundError(f"File not found: {path}", {"path": path})

    async def create_folder(self, path: str) -> None:
        full_path = self.resolve(path)
        if full_path.exists():
            raise NoteExistsError(f"Folder already exists: {path}", {"path": path})
        full_path.mkdir(parents=True)

    async def list(self, folder: str) -> List[VaultEntry]:
        full_path = self.resolve(folder)
        if not full_path.is_dir():
            raise NoteNotFoundError(f"Folder not found: {folder}", {"path": folder})
        entries = []
        for child in sorted(full_path.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower())):
            if child.name.startswith("."):
                continue
            entries.append(
                VaultEntry(name=child.name, path=self._relative(child), is_folder=child.is_dir())
            )
        return entries

    async def exists(self, path: str) -> bool:
        return (await self.stat(path)) is not None

    async def stat(self, path: str) -> Optional[EntryKind]:
        try:
            full_path = self.resolve(path)
        except PathEscapeError:
            return None
        if full_path.is_dir():
            return "folder"
        if full_path.is_file():
            return "file"
        return None

    async def list_markdown_files(self, folder: Optional[str] = None) -> List[str]:
        base = self.resolve(folder or "")
        if not base.is_dir():
            return []
        paths = []
        for md_file in base.rglob(f"*{NOTE_SUFFIX}"):
            relative = self._relative(md_file)
            if md_file.is_file() and not self._is_hidden(relative):
                paths.append(relative)
        return sorted(paths)

    async def active_document(self) -> Optional[str]:
        if self.active_path and self.resolve(self.active_path).is_file():
            return self.active_path
        return None

    async def outgoing_links(self, path: str) -> List[str]:
        content = await self.read(path)
        all_files = await self.list_markdown_files()
        resolved: List[str] = []
        for target in extract_link_targets(content):
            match = resolve_link(target, normalize_path(path), all_files)
            if match and match not in resolved:
                resolved.append(match)
        return resolved

    async def backlinks(self, path: str) -> List[str]:
        target_path = normalize_path(path)
        all_files = await self.list_markdown_files()
        sources = []
        for candidate in all_files:
            if candidate == target_path:
                continue
            content = self.resolve(candidate).read_text(encoding="utf-8")
            for link in extract_link_targets(content):
                if resolve_link(link, candidate, all_files) == target_path:
                    sources.append(candidate)
                    break
        return sources


def extract_link_targets(content: str) -> List[str]:
    """Return raw wikilink and relative markdown link targets in ``content``."""
    targets = [match.group(1).strip() for match in WIKILINK_PATTERN.finditer(content)]
    for match in MDLINK_PATTERN.finditer(content):
        target = match.group(1)
        if "://" in target or target.startswith("#"):
            continue
        targets.append(unquote(target.split("#", 1)[0]))
    return [target for target in targets if target]


def resolve_link(link: str, source_path: str, all_files: List[str]) -> Optional[str]:
    """Resolve a link target to a vault path, first match wins."""
    link = normalize_path(link)
    if not link:
        return None
    candidates = [link] if link.endswith(NOTE_SUFFIX) else [f"{link}{NOTE_SUFFIX}", link]
    source_folder = parent_of(source_path)
    for candidate in candidates:
        for option in (candidate, join_path(source_folder, candidate)):
            if option in all_files:
                return option
    # Bare wikilinks match by file name anywhere in the vault.
    if "/" not in link:
        wanted = candidates[0]
        for file_path in all_files:
            if name_of(file_path) == wanted:
                return file_path
    return None


__all__ = [
    "FileStore",
    "FileStoreError",
    "LocalVaultStore",
    "NOTE_SUFFIX",
    "NoteExistsError",
    "NoteNotFoundError",
    "PathEscapeError",
    "VaultEntry",
    "extract_link_targets",
    "join_path",
    "name_of",
    "normalize_path",
    "parent_of",
    "resolve_link",
]
