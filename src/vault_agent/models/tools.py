"""Pydantic models for tool calls and tool schemas."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolCall(BaseModel):
    """A structured tool invocation recovered from model output."""

    tool: str = Field(..., min_length=1, description="Tool name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Keyword arguments")
    reasoning: Optional[str] = Field(None, description="Optional model rationale")


class ToolResult(BaseModel):
    """Outcome of dispatching one ToolCall."""

    success: bool = Field(..., description="Whether the tool succeeded")
    result: str = Field(..., description="Human-readable result text")
    data: Optional[Any] = Field(None, description="Optional structured payload")

    @classmethod
    def ok(cls, result: str, data: Any = None) -> "ToolResult":
        return cls(success=True, result=result, data=data)

    @classmethod
    def fail(cls, result: str, data: Any = None) -> "ToolResult":
        return cls(success=False, result=result, data=data)


class ToolParameter(BaseModel):
    """A single JSON-Schema property."""

    type: str = Field(..., description="JSON type name")
    description: str = Field("", description="Parameter documentation")
    items: Optional[Dict[str, Any]] = Field(None, description="Item schema for arrays")


class ToolInputSchema(BaseModel):
    """JSON-Schema-like parameter contract."""

    type: str = Field("object")
    properties: Dict[str, ToolParameter] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)


class ToolSchema(BaseModel):
    """Tool description advertised to the model and to RPC clients."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: ToolInputSchema = Field(..., alias="inputSchema")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = ["ToolCall", "ToolInputSchema", "ToolParameter", "ToolResult", "ToolSchema"]
