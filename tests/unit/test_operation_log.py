"""Unit tests for the operation executor and the undo log."""

from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from vault_agent.models.operations import Operation, OperationKind, UndoableEntry
from vault_agent.services.file_store import NoteExistsError, NoteNotFoundError
from vault_agent.services.operation_log import OperationError, OperationExecutor, OperationLog


def op(kind: OperationKind, source: str, **kwargs) -> Operation:
    return Operation(kind=kind, source_path=source, **kwargs)


class TestOperationModel:
    def test_move_requires_target(self) -> None:
        with pytest.raises(ValidationError):
            op(OperationKind.MOVE, "a.md")

    def test_modify_requires_content(self) -> None:
        with pytest.raises(ValidationError):
            op(OperationKind.MODIFY, "a.md")

    def test_entry_requires_matching_lengths(self) -> None:
        with pytest.raises(ValidationError):
            UndoableEntry(
                description="bad",
                operations=(op(OperationKind.CREATE_FOLDER, "x"),),
                reverse_operations=(),
            )

    def test_entry_ids_are_unique(self) -> None:
        first = UndoableEntry(description="a")
        second = UndoableEntry(description="b")

        assert first.id.startswith("op-")
        assert first.id != second.id


class TestExecutorApply:
    @pytest.mark.asyncio
    async def test_create_file_inverse_is_delete(self, executor, store) -> None:
        inverse = await executor.apply(op(OperationKind.CREATE_FILE, "n.md", content="hi"))

        assert inverse == op(OperationKind.DELETE, "n.md")
        assert await store.read("n.md") == "hi"

    @pytest.mark.asyncio
    async def test_delete_file_inverse_restores_content(self, executor, store, write_note) -> None:
        write_note("n.md", "body")

        inverse = await executor.apply(op(OperationKind.DELETE, "n.md"))

        assert inverse.kind == OperationKind.CREATE_FILE
        assert inverse.content == "body"
        assert await store.stat("n.md") is None

    @pytest.mark.asyncio
    async def test_delete_folder_inverse_is_create_folder(self, executor, store) -> None:
        await store.create_folder("empty")

        inverse = await executor.apply(op(OperationKind.DELETE, "empty"))

        assert inverse == op(OperationKind.CREATE_FOLDER, "empty")

    @pytest.mark.asyncio
    async def test_move_inverse_swaps_paths(self, executor, write_note) -> None:
        write_note("a.md", "x")

        inverse = await executor.apply(op(OperationKind.MOVE, "a.md", target_path="sub/a.md"))

        assert inverse == op(OperationKind.MOVE, "sub/a.md", target_path="a.md")

    @pytest.mark.asyncio
    async def test_modify_inverse_carries_previous_content(self, executor, store, write_note) -> None:
        write_note("a.md", "old")

        inverse = await executor.apply(op(OperationKind.MODIFY, "a.md", content="new"))

        assert inverse.content == "old"
        assert await store.read("a.md") == "new"

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, executor) -> None:
        with pytest.raises(NoteNotFoundError):
            await executor.apply(op(OperationKind.DELETE, "missing.md"))

    @pytest.mark.asyncio
    async def test_ensure_folder_ops_lists_missing_segments(self, executor, store) -> None:
        await store.create_folder("a")

        ops = await executor.ensure_folder_ops("a/b/c")

        assert [o.source_path for o in ops] == ["a/b", "a/b/c"]

    @pytest.mark.asyncio
    async def test_ensure_folder_ops_rejects_file_segment(self, executor, write_note) -> None:
        write_note("a", "not a folder")

        with pytest.raises(OperationError):
            await executor.ensure_folder_ops("a/b")


class TestExecuteOperations:
    @pytest.mark.asyncio
    async def test_reverse_operations_are_in_replay_order(self, executor) -> None:
        entry = await executor.execute_operations(
            [
                op(OperationKind.CREATE_FOLDER, "x"),
                op(OperationKind.CREATE_FILE, "x/n.md", content=""),
            ],
            "Created note: x/n.md",
        )

        assert [o.source_path for o in entry.reverse_operations] == ["x/n.md", "x"]
        assert len(entry.operations) == len(entry.reverse_operations)

    @pytest.mark.asyncio
    async def test_failure_rolls_back_completed_steps(self, executor, store, write_note) -> None:
        write_note("taken.md", "keep")

        with pytest.raises(NoteExistsError):
            await executor.execute_operations(
                [
                    op(OperationKind.CREATE_FOLDER, "new"),
                    op(OperationKind.CREATE_FILE, "new/a.md", content="a"),
                    op(OperationKind.CREATE_FILE, "taken.md", content="clobber"),
                ],
                "composite",
            )

        assert await store.stat("new") is None
        assert await store.read("taken.md") == "keep"

    @pytest.mark.asyncio
    async def test_rollback_errors_do_not_mask_original(self, store) -> None:
        executor = OperationExecutor(store)
        executor.apply = AsyncMock(
            side_effect=[
                op(OperationKind.DELETE, "a"),
                RuntimeError("boom"),
                RuntimeError("rollback failed"),
            ]
        )

        with pytest.raises(RuntimeError, match="boom"):
            await executor.execute_operations(
                [op(OperationKind.CREATE_FOLDER, "a"), op(OperationKind.CREATE_FOLDER, "b")],
                "two folders",
            )
        assert executor.apply.await_count == 3


class TestOperationLog:
    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            OperationLog(capacity=0)

    def test_push_evicts_oldest_at_capacity(self) -> None:
        log = OperationLog(capacity=2)
        entries = [UndoableEntry(description=f"e{i}") for i in range(3)]
        for entry in entries:
            log.push(entry)

        assert len(log) == 2
        assert [e.description for e in log.history()] == ["e1", "e2"]
        assert log.peek() is entries[2]

    @pytest.mark.asyncio
    async def test_undo_on_empty_log_returns_none(self, operation_log) -> None:
        assert await operation_log.undo() is None

    @pytest.mark.asyncio
    async def test_undo_without_executor_raises(self) -> None:
        with pytest.raises(OperationError):
            await OperationLog().undo()

    @pytest.mark.asyncio
    async def test_undo_restores_prior_state(self, executor, operation_log, store, write_note) -> None:
        write_note("a.md", "original")
        entry = await executor.execute_operations(
            [
                op(OperationKind.MODIFY, "a.md", content="changed"),
                op(OperationKind.RENAME, "a.md", target_path="b.md"),
            ],
            "edit and rename",
        )
        operation_log.push(entry)

        undone = await operation_log.undo()

        assert undone is entry
        assert len(operation_log) == 0
        assert await store.read("a.md") == "original"
        assert await store.stat("b.md") is None

    @pytest.mark.asyncio
    async def test_failed_undo_keeps_entry(self, executor, operation_log, store) -> None:
        entry = await executor.execute_operations(
            [op(OperationKind.CREATE_FILE, "n.md", content="x")], "create"
        )
        operation_log.push(entry)
        # The file disappears behind the log's back, so the delete cannot replay.
        await store.delete("n.md")

        with pytest.raises(NoteNotFoundError):
            await operation_log.undo()

        assert operation_log.peek() is entry
