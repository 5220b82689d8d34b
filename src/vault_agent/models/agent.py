"""Pydantic models for agent runs."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .tools import ToolCall, ToolResult


class ContextScope(str, Enum):
    """Subset of the vault an agent or search run is limited to."""

    CURRENT = "current"
    LINKED = "linked"
    FOLDER = "folder"
    VAULT = "vault"

    def describe(self) -> str:
        return {
            ContextScope.CURRENT: "the currently open note only",
            ContextScope.LINKED: "the current note and all notes linked to/from it",
            ContextScope.FOLDER: "all notes in the current folder",
            ContextScope.VAULT: "the entire vault",
        }[self]


class ChatMessage(BaseModel):
    """A single message in an LLM conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class ToolCallStep(BaseModel):
    kind: Literal["tool_call"] = "tool_call"
    call: ToolCall
    result: ToolResult


class FinalAnswerStep(BaseModel):
    kind: Literal["final_answer"] = "final_answer"
    answer: str
    sources: List[str] = Field(default_factory=list)


AgentStep = Annotated[Union[ToolCallStep, FinalAnswerStep], Field(discriminator="kind")]


class AgentResult(BaseModel):
    """Outcome of one agent run."""

    answer: str = Field(..., min_length=1, description="Answer shown to the user")
    sources: List[str] = Field(default_factory=list, description="Vault paths cited")
    steps: List[AgentStep] = Field(default_factory=list, description="Ordered audit trail")
    actions_performed: List[str] = Field(
        default_factory=list, description="Summaries of mutating actions"
    )
    iterations: int = Field(0, ge=0, description="LLM calls made")
    error: Optional[str] = Field(None, description="Transport error, if the run failed")


__all__ = [
    "AgentResult",
    "AgentStep",
    "ChatMessage",
    "ContextScope",
    "FinalAnswerStep",
    "ToolCallStep",
]
