"""Pydantic models for reversible vault operations."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OperationKind(str, Enum):
    """Kinds of primitive file-store mutations."""

    CREATE_FOLDER = "create-folder"
    CREATE_FILE = "create-file"
    MOVE = "move"
    RENAME = "rename"
    DELETE = "delete"
    MODIFY = "modify"


class Operation(BaseModel):
    """A single primitive mutation. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind = Field(..., description="Operation kind")
    source_path: str = Field(..., min_length=1, description="Vault-relative path acted on")
    target_path: Optional[str] = Field(None, description="Destination for move/rename")
    content: Optional[str] = Field(None, description="Text for create-file/modify")

    @model_validator(mode="after")
    def _check_fields(self) -> "Operation":
        if self.kind in (OperationKind.MOVE, OperationKind.RENAME) and not self.target_path:
            raise ValueError(f"{self.kind.value} requires target_path")
        if self.kind in (OperationKind.CREATE_FILE, OperationKind.MODIFY) and self.content is None:
            raise ValueError(f"{self.kind.value} requires content")
        return self

    def describe(self) -> str:
        if self.target_path:
            return f"{self.kind.value} {self.source_path} -> {self.target_path}"
        return f"{self.kind.value} {self.source_path}"


def _entry_id() -> str:
    return f"op-{uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UndoableEntry(BaseModel):
    """A composite, reversible action recorded in the operation log.

    ``reverse_operations`` are stored in replay order: applying them first to
    last restores the state that existed before ``operations`` ran.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_entry_id, description="Opaque entry identifier")
    timestamp: datetime = Field(default_factory=_utcnow, description="Creation time (UTC)")
    description: str = Field(..., description="Human-readable summary")
    operations: Tuple[Operation, ...] = Field(default_factory=tuple)
    reverse_operations: Tuple[Operation, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def _check_lengths(self) -> "UndoableEntry":
        if len(self.operations) != len(self.reverse_operations):
            raise ValueError("operations and reverse_operations must have equal length")
        return self


__all__ = ["Operation", "OperationKind", "UndoableEntry"]
