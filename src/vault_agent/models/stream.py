"""Typed events for the streaming chat protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ToolProviderInfo(BaseModel):
    """Which integration served a remote tool call."""

    model_config = ConfigDict(extra="allow")

    type: str = Field("plugin", description="plugin or ephemeral_mcp")
    plugin_id: Optional[str] = None
    server_label: Optional[str] = None


class ChatStats(BaseModel):
    """Usage statistics reported at the end of a chat."""

    model_config = ConfigDict(extra="allow")

    input_tokens: int = 0
    total_output_tokens: int = 0
    reasoning_output_tokens: int = 0
    tokens_per_second: float = 0.0
    time_to_first_token_seconds: float = 0.0
    model_load_time_seconds: Optional[float] = None


class ChatEndResult(BaseModel):
    """Authoritative summary carried by ``chat.end``."""

    model_config = ConfigDict(extra="allow")

    model_instance_id: Optional[str] = None
    output: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Optional[ChatStats] = None
    response_id: Optional[str] = None


class StreamError(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "unknown"
    message: str = ""
    code: Optional[str] = None
    param: Optional[str] = None


class LifecycleEvent(BaseModel):
    type: Literal[
        "chat.start",
        "model_load.start",
        "model_load.end",
        "prompt_processing.start",
        "prompt_processing.end",
        "message.start",
        "message.end",
        "reasoning.start",
        "reasoning.end",
    ]
    model_instance_id: Optional[str] = None
    load_time_seconds: Optional[float] = None


class DeltaEvent(BaseModel):
    type: Literal["message.delta", "reasoning.delta"]
    content: str = ""


class ProgressEvent(BaseModel):
    type: Literal["model_load.progress", "prompt_processing.progress"]
    progress: Optional[float] = None


class ToolCallStartEvent(BaseModel):
    type: Literal["tool_call.start"]
    tool: str = ""
    provider_info: Optional[ToolProviderInfo] = None


class ToolCallArgumentsEvent(BaseModel):
    type: Literal["tool_call.arguments"]
    tool: Optional[str] = None
    arguments: Dict[str, Any] = Field(default_factory=dict)
    provider_info: Optional[ToolProviderInfo] = None


class ToolCallOutputEvent(BaseModel):
    type: Literal["tool_call.output"]
    output: str = ""


class ToolCallSuccessEvent(BaseModel):
    type: Literal["tool_call.success"]
    tool: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    output: Optional[str] = None
    provider_info: Optional[ToolProviderInfo] = None


class ToolCallFailureEvent(BaseModel):
    type: Literal["tool_call.failure"]
    reason: str = ""
    metadata: Optional[Dict[str, Any]] = None


class ErrorEvent(BaseModel):
    type: Literal["error"]
    error: Optional[StreamError] = None


class ChatEndEvent(BaseModel):
    type: Literal["chat.end"]
    result: Optional[ChatEndResult] = None


StreamEvent = Annotated[
    Union[
        LifecycleEvent,
        DeltaEvent,
        ProgressEvent,
        ToolCallStartEvent,
        ToolCallArgumentsEvent,
        ToolCallOutputEvent,
        ToolCallSuccessEvent,
        ToolCallFailureEvent,
        ErrorEvent,
        ChatEndEvent,
    ],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)


class ToolCallRecord(BaseModel):
    """A remote tool call observed in the stream."""

    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[str] = None
    provider_info: Optional[ToolProviderInfo] = None
    success: Optional[bool] = None
    reason: Optional[str] = None


class StreamChatResult(BaseModel):
    """Accumulated state once a stream has ended."""

    content: str = ""
    reasoning: Optional[str] = None
    response_id: Optional[str] = None
    stats: Optional[ChatStats] = None
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)


@dataclass
class StreamCallbacks:
    """Optional per-event hooks; each is called synchronously by the decoder."""

    on_message_start: Optional[Callable[[], None]] = None
    on_message_delta: Optional[Callable[[str], None]] = None
    on_message_end: Optional[Callable[[], None]] = None
    on_reasoning_start: Optional[Callable[[], None]] = None
    on_reasoning_delta: Optional[Callable[[str], None]] = None
    on_reasoning_end: Optional[Callable[[], None]] = None
    on_model_load_progress: Optional[Callable[[float], None]] = None
    on_prompt_processing_progress: Optional[Callable[[float], None]] = None
    on_tool_call_start: Optional[Callable[[ToolCallRecord], None]] = None
    on_tool_call_arguments: Optional[Callable[[Dict[str, Any]], None]] = None
    on_tool_call_output: Optional[Callable[[str], None]] = None
    on_tool_call_success: Optional[Callable[[ToolCallRecord], None]] = None
    on_tool_call_failure: Optional[Callable[[str, Optional[ToolCallRecord]], None]] = None
    on_error: Optional[Callable[[StreamError], None]] = None
    on_chat_end: Optional[Callable[[ChatEndResult], None]] = None


__all__ = [
    "ChatEndEvent",
    "ChatEndResult",
    "ChatStats",
    "DeltaEvent",
    "ErrorEvent",
    "LifecycleEvent",
    "ProgressEvent",
    "StreamCallbacks",
    "StreamChatResult",
    "StreamError",
    "StreamEvent",
    "ToolCallArgumentsEvent",
    "ToolCallFailureEvent",
    "ToolCallOutputEvent",
    "ToolCallRecord",
    "ToolCallStartEvent",
    "ToolCallSuccessEvent",
    "ToolProviderInfo",
    "stream_event_adapter",
]
