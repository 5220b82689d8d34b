"""Unit tests for the streamed chat event decoder."""

import json
from typing import List

import pytest

from vault_agent.models.stream import DeltaEvent, StreamCallbacks
from vault_agent.services.stream_decoder import ChatStreamDecoder


def frame(event_type: str, payload: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"


STREAM = "".join(
    [
        frame("chat.start", {"type": "chat.start", "model_instance_id": "m1"}),
        frame("reasoning.start", {"type": "reasoning.start"}),
        frame("reasoning.delta", {"type": "reasoning.delta", "content": "thinking"}),
        frame("reasoning.end", {"type": "reasoning.end"}),
        frame("message.start", {"type": "message.start"}),
        frame("message.delta", {"type": "message.delta", "content": "Héllo "}),
        frame("message.delta", {"type": "message.delta", "content": "wörld"}),
        frame("message.end", {"type": "message.end"}),
        frame(
            "tool_call.start",
            {"type": "tool_call.start", "tool": "read_note",
             "provider_info": {"type": "ephemeral_mcp", "server_label": "vault"}},
        ),
        frame("tool_call.arguments", {"type": "tool_call.arguments", "arguments": {"path": "a.md"}}),
        frame("tool_call.output", {"type": "tool_call.output", "output": "Content of a.md"}),
        frame("tool_call.success", {"type": "tool_call.success", "tool": "read_note"}),
        frame(
            "chat.end",
            {"type": "chat.end", "result": {"response_id": "resp_1",
                                            "stats": {"input_tokens": 3, "total_output_tokens": 2}}},
        ),
    ]
)


def decode(chunks: List[bytes]) -> ChatStreamDecoder:
    decoder = ChatStreamDecoder()
    for chunk in chunks:
        decoder.feed(chunk)
    decoder.close()
    return decoder


class TestAccumulation:
    def test_whole_stream(self) -> None:
        decoder = decode([STREAM.encode("utf-8")])
        result = decoder.result()

        assert result.content == "Héllo wörld"
        assert result.reasoning == "thinking"
        assert result.response_id == "resp_1"
        assert result.stats.input_tokens == 3
        assert len(result.tool_calls) == 1
        call = result.tool_calls[0]
        assert call.tool == "read_note"
        assert call.arguments == {"path": "a.md"}
        assert call.output == "Content of a.md"
        assert call.success is True
        assert call.provider_info.server_label == "vault"
        assert decoder.current_tool_call is None
        assert decoder.dropped_frames == 0

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64])
    def test_chunk_boundaries_do_not_matter(self, size: int) -> None:
        raw = STREAM.encode("utf-8")
        chunks = [raw[i:i + size] for i in range(0, len(raw), size)]

        assert decode(chunks).result() == decode([raw]).result()

    def test_crlf_line_endings(self) -> None:
        raw = frame("message.delta", {"type": "message.delta", "content": "hi"}).replace("\n", "\r\n")

        assert decode([raw.encode()]).result().content == "hi"

    def test_missing_trailing_newline_is_flushed_on_close(self) -> None:
        raw = 'event: message.delta\ndata: {"type": "message.delta", "content": "tail"}'

        assert decode([raw.encode()]).result().content == "tail"

    def test_feed_returns_completed_events(self) -> None:
        decoder = ChatStreamDecoder()

        first = decoder.feed(b'event: message.delta\ndata: {"type": "message.de')
        second = decoder.feed(b'lta", "content": "x"}\n')

        assert first == []
        assert second == [DeltaEvent(type="message.delta", content="x")]


class TestRobustness:
    def test_malformed_json_is_dropped(self) -> None:
        raw = "event: message.delta\ndata: {not json}\n\n" + frame(
            "message.delta", {"type": "message.delta", "content": "ok"}
        )

        decoder = decode([raw.encode()])

        assert decoder.result().content == "ok"
        assert decoder.dropped_frames == 1

    def test_unknown_event_type_is_dropped(self) -> None:
        decoder = decode([frame("mystery.event", {"type": "mystery.event"}).encode()])

        assert decoder.dropped_frames == 1

    def test_data_without_event_line_is_ignored(self) -> None:
        decoder = decode([b'data: {"type": "message.delta", "content": "x"}\n\n'])

        assert decoder.result().content == ""

    def test_type_taken_from_event_line_when_payload_omits_it(self) -> None:
        decoder = decode([b'event: message.delta\ndata: {"content": "x"}\n\n'])

        assert decoder.result().content == "x"

    def test_error_event_recorded(self) -> None:
        raw = frame("error", {"type": "error", "error": {"type": "model_not_found", "message": "no model"}})

        decoder = decode([raw.encode()])

        assert decoder.errors[0].type == "model_not_found"
        assert decoder.errors[0].message == "no model"


class TestCallbacks:
    def test_callbacks_fire_in_order(self) -> None:
        seen = []
        callbacks = StreamCallbacks(
            on_message_start=lambda: seen.append("start"),
            on_message_delta=lambda text: seen.append(f"delta:{text}"),
            on_message_end=lambda: seen.append("end"),
            on_reasoning_delta=lambda text: seen.append(f"reason:{text}"),
            on_tool_call_start=lambda record: seen.append(f"tool:{record.tool}"),
            on_tool_call_arguments=lambda args: seen.append(f"args:{args['path']}"),
            on_tool_call_success=lambda record: seen.append(f"ok:{record.tool}"),
            on_chat_end=lambda result: seen.append(f"done:{result.response_id}"),
        )
        decoder = ChatStreamDecoder(callbacks)
        decoder.feed(STREAM.encode())

        assert seen == [
            "reason:thinking",
            "start",
            "delta:Héllo ",
            "delta:wörld",
            "end",
            "tool:read_note",
            "args:a.md",
            "ok:read_note",
            "done:resp_1",
        ]

    def test_tool_failure_callback(self) -> None:
        failures = []
        decoder = ChatStreamDecoder(
            StreamCallbacks(on_tool_call_failure=lambda reason, record: failures.append((reason, record.tool)))
        )

        decoder.feed(
            (
                frame("tool_call.start", {"type": "tool_call.start", "tool": "delete_note"})
                + frame("tool_call.failure", {"type": "tool_call.failure", "reason": "denied"})
            ).encode()
        )

        assert failures == [("denied", "delete_note")]
        assert decoder.tool_calls[0].success is False
        assert decoder.tool_calls[0].reason == "denied"
