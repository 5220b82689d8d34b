"""Reversible operation execution and the bounded undo log."""

from __future__ import annotations

from collections import deque
import logging
from typing import Any, Deque, Dict, List, Optional, Sequence

from ..models.operations import Operation, OperationKind, UndoableEntry
from .file_store import FileStore, NoteNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_UNDO_CAPACITY = 10


class OperationError(Exception):
    """Raised when an operation cannot be applied or replayed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class OperationExecutor:
    """Applies primitive operations to a FileStore and derives their inverses.

    ``apply`` is shared by forward execution, rollback and undo so that every
    path through the system mutates the store the same way.
    """

    def __init__(self, store: FileStore) -> None:
        self.store = store

    async def apply(self, op: Operation) -> Operation:
        """Apply ``op`` and return the operation that exactly undoes it."""
        path = op.source_path

        if op.kind == OperationKind.CREATE_FOLDER:
            await self.store.create_folder(path)
            return Operation(kind=OperationKind.DELETE, source_path=path)

        if op.kind == OperationKind.CREATE_FILE:
            await self.store.create(path, op.content or "")
            return Operation(kind=OperationKind.DELETE, source_path=path)

        if op.kind in (OperationKind.MOVE, OperationKind.RENAME):
            await self.store.rename(path, op.target_path)
            return Operation(kind=op.kind, source_path=op.target_path, target_path=path)

        if op.kind == OperationKind.DELETE:
            kind = await self.store.stat(path)
            if kind is None:
                raise NoteNotFoundError(f"File not found: {path}", {"path": path})
            if kind == "folder":
                await self.store.delete(path)
                return Operation(kind=OperationKind.CREATE_FOLDER, source_path=path)
            content = await self.store.read(path)
            await self.store.trash(path)
            return Operation(kind=OperationKind.CREATE_FILE, source_path=path, content=content)

        if op.kind == OperationKind.MODIFY:
            previous = await self.store.read(path)
            await self.store.modify(path, op.content)
            return Operation(kind=OperationKind.MODIFY, source_path=path, content=previous)

        raise OperationError(f"Unknown operation kind: {op.kind}")

    async def execute_operations(
        self, operations: Sequence[Operation], description: str
    ) -> UndoableEntry:
        """Run ``operations`` in order with all-or-nothing semantics.

        Each inverse is prepended to the reverse list so it is already in
        replay order. When a step fails, completed steps are rolled back
        before the original error is re-raised.
        """
        executed: List[Operation] = []
        reverse: List[Operation] = []
        try:
            for op in operations:
                inverse = await self.apply(op)
                reverse.insert(0, inverse)
                executed.append(op)
        except Exception as exc:
            logger.warning(
                f"Operation failed, rolling back {len(reverse)} step(s): {exc}",
                extra={"description": description, "completed": len(reverse)},
            )
            await self._rollback(reverse)
            raise

        return UndoableEntry(
            description=description,
            operations=tuple(executed),
            reverse_operations=tuple(reverse),
        )

    async def _rollback(self, reverse: Sequence[Operation]) -> None:
        for inverse in reverse:
            try:
                await self.apply(inverse)
            except Exception as rollback_error:
                logger.error(
                    f"Rollback failed: {rollback_error}",
                    extra={"operation": inverse.describe()},
                )

    async def ensure_folder_ops(self, folder: str) -> List[Operation]:
        """Return create-folder operations for each missing segment of ``folder``."""
        ops: List[Operation] = []
        current = ""
        for part in [p for p in folder.split("/") if p]:
            current = f"{current}/{part}" if current else part
            kind = await self.store.stat(current)
            if kind == "file":
                raise OperationError(f"Path is a file, not a folder: {current}")
            if kind is None:
                ops.append(Operation(kind=OperationKind.CREATE_FOLDER, source_path=current))
        return ops


class OperationLog:
    """Bounded LIFO of undoable entries.

    Pushing past capacity evicts the oldest entry. The forward changes of an
    evicted entry stay on disk; only the ability to undo them is lost.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_UNDO_CAPACITY,
        executor: Optional[OperationExecutor] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.executor = executor
        self._entries: Deque[UndoableEntry] = deque(maxlen=capacity)

    def push(self, entry: UndoableEntry) -> None:
        if len(self._entries) == self.capacity:
            evicted = self._entries[0]
            logger.debug(
                "Undo log full, evicting oldest entry",
                extra={"entry_id": evicted.id, "description": evicted.description},
            )
        self._entries.append(entry)

    def peek(self) -> Optional[UndoableEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def history(self) -> List[UndoableEntry]:
        """Entries oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    async def undo(self) -> Optional[UndoableEntry]:
        """Pop the newest entry and replay its reverse operations in order.

        On a replay failure the entry goes back on the log and the error
        propagates to the caller.
        """
        if self.executor is None:
            raise OperationError("Operation log has no executor to undo with")
        if not self._entries:
            return None

        entry = self._entries.pop()
        try:
            for inverse in entry.reverse_operations:
                await self.executor.apply(inverse)
        except Exception as exc:
            logger.error(
                f"Undo failed: {exc}",
                extra={"entry_id": entry.id, "description": entry.description},
            )
            self._entries.append(entry)
            raise

        logger.info(
            f"Undid: {entry.description}",
            extra={"entry_id": entry.id, "steps": len(entry.reverse_operations)},
        )
        return entry


__all__ = [
    "DEFAULT_UNDO_CAPACITY",
    "OperationError",
    "OperationExecutor",
    "OperationLog",
]
