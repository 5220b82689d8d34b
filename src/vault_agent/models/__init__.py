"""Pydantic models for data validation and serialization."""

from .agent import (
    AgentResult,
    AgentStep,
    ChatMessage,
    ContextScope,
    FinalAnswerStep,
    ToolCallStep,
)
from .operations import Operation, OperationKind, UndoableEntry
from .search import LineMatch, SearchResult
from .stream import (
    ChatEndResult,
    ChatStats,
    StreamCallbacks,
    StreamChatResult,
    StreamError,
    StreamEvent,
    ToolCallRecord,
)
from .tools import ToolCall, ToolInputSchema, ToolParameter, ToolResult, ToolSchema

__all__ = [
    "AgentResult",
    "AgentStep",
    "ChatEndResult",
    "ChatMessage",
    "ChatStats",
    "ContextScope",
    "FinalAnswerStep",
    "LineMatch",
    "Operation",
    "OperationKind",
    "SearchResult",
    "StreamCallbacks",
    "StreamChatResult",
    "StreamError",
    "StreamEvent",
    "ToolCall",
    "ToolCallRecord",
    "ToolCallStep",
    "ToolInputSchema",
    "ToolParameter",
    "ToolResult",
    "ToolSchema",
    "UndoableEntry",
]
