"""Incremental decoder for the server-sent chat event stream.

The stream is a sequence of ``event: <type>`` / ``data: <json>`` line pairs.
Chunks may split anywhere, including inside a line or a multi-byte UTF-8
sequence; the decoder buffers partial input until a full line is available.
One decoder instance serves exactly one stream.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, List, Optional, Union

from pydantic import ValidationError

from ..models.stream import (
    ChatEndEvent,
    ChatStats,
    DeltaEvent,
    ErrorEvent,
    LifecycleEvent,
    ProgressEvent,
    StreamCallbacks,
    StreamChatResult,
    StreamError,
    StreamEvent,
    ToolCallArgumentsEvent,
    ToolCallFailureEvent,
    ToolCallOutputEvent,
    ToolCallRecord,
    ToolCallStartEvent,
    ToolCallSuccessEvent,
    stream_event_adapter,
)

logger = logging.getLogger(__name__)

EVENT_PREFIX = "event:"
DATA_PREFIX = "data:"


class ChatStreamDecoder:
    """Turns raw stream chunks into typed events and accumulated state."""

    def __init__(self, callbacks: Optional[StreamCallbacks] = None) -> None:
        self.callbacks = callbacks or StreamCallbacks()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_type: Optional[str] = None

        self.content = ""
        self.reasoning = ""
        self.response_id: Optional[str] = None
        self.stats: Optional[ChatStats] = None
        self.tool_calls: List[ToolCallRecord] = []
        self.current_tool_call: Optional[ToolCallRecord] = None
        self.errors: List[StreamError] = []
        self.dropped_frames = 0

    # ------------------------------------------------------------------
    # Framing
    # ------------------------------------------------------------------

    def feed(self, chunk: Union[bytes, str]) -> List[StreamEvent]:
        """Consume one chunk and return the events it completed."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        events: List[StreamEvent] = []
        for line in lines:
            event = self._handle_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def close(self) -> List[StreamEvent]:
        """Flush any buffered input once the transport has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        events = self.feed(remaining + "\n") if remaining else []
        self._event_type = None
        return events

    def _handle_line(self, line: str) -> Optional[StreamEvent]:
        if line == "":
            self._event_type = None
            return None
        if line.startswith(EVENT_PREFIX):
            self._event_type = line[len(EVENT_PREFIX):].strip()
            return None
        if not line.startswith(DATA_PREFIX):
            return None

        event_type, self._event_type = self._event_type, None
        data = line[len(DATA_PREFIX):].strip()
        if not event_type or not data:
            return None
        event = self._parse(event_type, data)
        if event is not None:
            self._dispatch(event)
        return event

    def _parse(self, event_type: str, data: str) -> Optional[StreamEvent]:
        try:
            payload: Any = json.loads(data)
        except json.JSONDecodeError as e:
            self.dropped_frames += 1
            logger.warning(f"Dropping malformed stream frame ({event_type}): {e}")
            return None
        if not isinstance(payload, dict):
            self.dropped_frames += 1
            logger.warning(f"Dropping non-object stream frame ({event_type})")
            return None
        payload.setdefault("type", event_type)
        try:
            return stream_event_adapter.validate_python(payload)
        except ValidationError as e:
            self.dropped_frames += 1
            logger.warning(
                f"Dropping unrecognised stream event: {payload.get('type')}",
                extra={"errors": e.error_count()},
            )
            return None

    # ------------------------------------------------------------------
    # Event dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event: StreamEvent) -> None:
        cb = self.callbacks

        if isinstance(event, DeltaEvent):
            if not event.content:
                return
            if event.type == "message.delta":
                self.content += event.content
                if cb.on_message_delta:
                    cb.on_message_delta(event.content)
            else:
                self.reasoning += event.content
                if cb.on_reasoning_delta:
                    cb.on_reasoning_delta(event.content)

        elif isinstance(event, LifecycleEvent):
            hook = {
                "message.start": cb.on_message_start,
                "message.end": cb.on_message_end,
                "reasoning.start": cb.on_reasoning_start,
                "reasoning.end": cb.on_reasoning_end,
            }.get(event.type)
            if hook:
                hook()

        elif isinstance(event, ProgressEvent):
            if event.progress is None:
                return
            if event.type == "model_load.progress":
                if cb.on_model_load_progress:
                    cb.on_model_load_progress(event.progress)
            elif cb.on_prompt_processing_progress:
                cb.on_prompt_processing_progress(event.progress)

        elif isinstance(event, ToolCallStartEvent):
            if self.current_tool_call is not None:
                logger.warning(
                    f"Tool call {event.tool} started while "
                    f"{self.current_tool_call.tool} was still in flight"
                )
            self.current_tool_call = ToolCallRecord(
                tool=event.tool, provider_info=event.provider_info
            )
            if cb.on_tool_call_start:
                cb.on_tool_call_start(self.current_tool_call)

        elif isinstance(event, ToolCallArgumentsEvent):
            if self.current_tool_call is not None:
                self.current_tool_call.arguments = dict(event.arguments)
                if event.tool:
                    self.current_tool_call.tool = event.tool
            if cb.on_tool_call_arguments:
                cb.on_tool_call_arguments(event.arguments)

        elif isinstance(event, ToolCallOutputEvent):
            if self.current_tool_call is not None:
                self.current_tool_call.output = event.output
            if cb.on_tool_call_output:
                cb.on_tool_call_output(event.output)

        elif isinstance(event, ToolCallSuccessEvent):
            record = self.current_tool_call or ToolCallRecord(tool=event.tool or "")
            if event.tool:
                record.tool = event.tool
            if event.arguments is not None:
                record.arguments = dict(event.arguments)
            if event.output is not None:
                record.output = event.output
            if event.provider_info is not None:
                record.provider_info = event.provider_info
            record.success = True
            self._finish_tool_call(record)
            if cb.on_tool_call_success:
                cb.on_tool_call_success(record)

        elif isinstance(event, ToolCallFailureEvent):
            record = self.current_tool_call
            if record is not None:
                record.success = False
                record.reason = event.reason
                self._finish_tool_call(record)
            if cb.on_tool_call_failure:
                cb.on_tool_call_failure(event.reason, record)

        elif isinstance(event, ErrorEvent):
            error = event.error or StreamError()
            self.errors.append(error)
            logger.warning(f"Stream reported error: {error.type}: {error.message}")
            if cb.on_error:
                cb.on_error(error)

        elif isinstance(event, ChatEndEvent):
            if event.result is None:
                return
            if event.result.response_id:
                self.response_id = event.result.response_id
            if event.result.stats:
                self.stats = event.result.stats
            if cb.on_chat_end:
                cb.on_chat_end(event.result)

    def _finish_tool_call(self, record: ToolCallRecord) -> None:
        self.tool_calls.append(record)
        self.current_tool_call = None

    def result(self) -> StreamChatResult:
        return StreamChatResult(
            content=self.content,
            reasoning=self.reasoning or None,
            response_id=self.response_id,
            stats=self.stats,
            tool_calls=list(self.tool_calls),
        )


__all__ = ["ChatStreamDecoder"]
