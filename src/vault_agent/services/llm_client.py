"""HTTP clients for local LLM backends (LM Studio and Ollama)."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from ..models.agent import ChatMessage
from ..models.stream import (
    ChatStats,
    StreamCallbacks,
    StreamChatResult,
    StreamError,
    ToolCallRecord,
    ToolProviderInfo,
)
from .config import AppConfig, get_config
from .stream_decoder import ChatStreamDecoder

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
CONNECT_TIMEOUT = 10.0

MessageLike = Union[ChatMessage, Dict[str, str]]


class LLMClientError(Exception):
    """Raised when the LLM backend cannot be reached or answers with an error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LLMStreamError(LLMClientError):
    """Raised after a stream ends when it reported errors or broke off."""


def _as_dicts(messages: Sequence[MessageLike]) -> List[Dict[str, str]]:
    result = []
    for message in messages:
        if isinstance(message, ChatMessage):
            result.append({"role": message.role, "content": message.content})
        else:
            result.append({"role": message["role"], "content": message["content"]})
    return result


class LLMClient(ABC):
    """Common plumbing for LLM backends.

    ``chat`` is bounded by ``timeout`` seconds overall; streamed reads are
    bounded by ``stream_timeout`` seconds between chunks.
    """

    def __init__(
        self,
        base_url: str,
        model: str = "",
        timeout: float = 120.0,
        stream_timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.stream_timeout = stream_timeout
        self._transport = transport

    def set_model(self, model: str) -> None:
        self.model = model

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or httpx.Timeout(self.timeout, connect=CONNECT_TIMEOUT),
            transport=self._transport,
        )

    def _require_model(self) -> str:
        if not self.model:
            raise LLMClientError("No model selected")
        return self.model

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        logger.debug(f"LLM request: {method} {path}")
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"LLM API error: {e.response.status_code} - {e.response.text[:200]}")
            raise LLMClientError(
                f"HTTP error: {e.response.status_code}",
                {"status": e.response.status_code, "path": path},
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"LLM request timed out: {method} {path}")
            raise LLMClientError("Request timeout", {"path": path}) from e
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed: {e}")
            raise LLMClientError(f"Request failed: {e}", {"path": path}) from e
        except ValueError as e:
            raise LLMClientError(f"Invalid JSON from backend: {e}", {"path": path}) from e

    async def chat(self, messages: Sequence[MessageLike]) -> str:
        """Send a conversation and return the reply text, within ``timeout``."""
        try:
            return await asyncio.wait_for(self._chat(_as_dicts(messages)), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"LLM chat exceeded {self.timeout}s")
            raise LLMClientError(f"LLM call timed out after {self.timeout:g}s") from e

    async def is_connected(self) -> bool:
        try:
            await self.list_models()
            return True
        except LLMClientError:
            return False

    @abstractmethod
    async def list_models(self) -> List[str]:
        """Return identifiers of the models the backend offers."""

    @abstractmethod
    async def _chat(self, messages: List[Dict[str, str]]) -> str:
        """Backend-specific non-streaming chat."""

    @abstractmethod
    async def chat_stream(
        self,
        input: str,
        *,
        system_prompt: Optional[str] = None,
        callbacks: Optional[StreamCallbacks] = None,
        previous_response_id: Optional[str] = None,
        integrations: Optional[List[Any]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> StreamChatResult:
        """Stream a single-shot chat, firing ``callbacks`` as events arrive."""


class LMStudioClient(LLMClient):
    """Client for LM Studio's OpenAI-compatible and native chat endpoints."""

    def __init__(self, base_url: str = "http://localhost:1234", model: str = "", **kwargs: Any) -> None:
        super().__init__(base_url, model, **kwargs)

    async def list_models(self) -> List[str]:
        data = await self._request("GET", "/v1/models")
        return [item["id"] for item in data.get("data", [])]

    async def _chat(self, messages: List[Dict[str, str]]) -> str:
        data = await self._request(
            "POST",
            "/v1/chat/completions",
            {
                "model": self._require_model(),
                "messages": messages,
                "stream": False,
                "temperature": DEFAULT_TEMPERATURE,
            },
        )
        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""

    def _chat_body(
        self,
        input: str,
        stream: bool,
        system_prompt: Optional[str],
        previous_response_id: Optional[str],
        integrations: Optional[List[Any]],
        temperature: float,
        store: bool = True,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._require_model(),
            "input": input,
            "stream": stream,
            "temperature": temperature,
            "store": store,
        }
        if system_prompt:
            body["system_prompt"] = system_prompt
        if previous_response_id:
            body["previous_response_id"] = previous_response_id
        if integrations:
            body["integrations"] = integrations
        return body

    async def chat_v1(
        self,
        input: str,
        *,
        system_prompt: Optional[str] = None,
        previous_response_id: Optional[str] = None,
        integrations: Optional[List[Any]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        store: bool = True,
    ) -> StreamChatResult:
        """Non-streaming call to the native chat endpoint."""
        body = self._chat_body(
            input, False, system_prompt, previous_response_id, integrations, temperature, store
        )
        data = await self._request("POST", "/api/v1/chat", body)

        content = ""
        reasoning = ""
        tool_calls: List[ToolCallRecord] = []
        for item in data.get("output", []):
            kind = item.get("type")
            if kind == "message" and item.get("content"):
                content += item["content"]
            elif kind == "reasoning" and item.get("content"):
                reasoning += item["content"]
            elif kind == "tool_call":
                tool_calls.append(
                    ToolCallRecord(
                        tool=item.get("tool", ""),
                        arguments=item.get("arguments") or {},
                        output=item.get("output"),
                        provider_info=ToolProviderInfo(**item["provider_info"])
                        if item.get("provider_info") else None,
                        success=True,
                    )
                )
            elif kind == "invalid_tool_call":
                metadata = item.get("metadata") or {}
                tool_calls.append(
                    ToolCallRecord(
                        tool=metadata.get("tool_name", ""),
                        arguments=metadata.get("arguments") or {},
                        success=False,
                        reason=item.get("reason"),
                    )
                )

        return StreamChatResult(
            content=content,
            reasoning=reasoning or None,
            response_id=data.get("response_id"),
            stats=ChatStats(**data["stats"]) if data.get("stats") else None,
            tool_calls=tool_calls,
        )

    async def chat_stream(
        self,
        input: str,
        *,
        system_prompt: Optional[str] = None,
        callbacks: Optional[StreamCallbacks] = None,
        previous_response_id: Optional[str] = None,
        integrations: Optional[List[Any]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> StreamChatResult:
        body = self._chat_body(
            input, True, system_prompt, previous_response_id, integrations, temperature
        )
        decoder = ChatStreamDecoder(callbacks)
        timeout = httpx.Timeout(self.timeout, connect=CONNECT_TIMEOUT, read=self.stream_timeout)

        try:
            async with self._client(timeout) as client:
                async with client.stream(
                    "POST",
                    "/api/v1/chat",
                    json=body,
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        raise LLMClientError(
                            f"HTTP error: {response.status_code}",
                            {"status": response.status_code},
                        )
                    async for chunk in response.aiter_bytes():
                        decoder.feed(chunk)
            decoder.close()
        except httpx.HTTPError as e:
            kind = "timeout" if isinstance(e, httpx.TimeoutException) else "transport"
            error = StreamError(type=kind, message=str(e) or kind)
            logger.error(f"LLM stream failed: {error.message}")
            if decoder.callbacks.on_error:
                decoder.callbacks.on_error(error)
            raise LLMStreamError(f"Stream failed: {error.message}", {"partial": decoder.result()}) from e

        if decoder.errors:
            first = decoder.errors[0]
            raise LLMStreamError(
                first.message or first.type,
                {"errors": [err.model_dump() for err in decoder.errors], "partial": decoder.result()},
            )
        return decoder.result()


class OllamaClient(LLMClient):
    """Client for Ollama's chat API. Streaming falls back to one delta."""

    def __init__(self, base_url: str = "http://localhost:11434", model: str = "", **kwargs: Any) -> None:
        super().__init__(base_url, model, **kwargs)

    async def list_models(self) -> List[str]:
        data = await self._request("GET", "/api/tags")
        return [item["name"] for item in data.get("models", [])]

    async def _chat(self, messages: List[Dict[str, str]]) -> str:
        data = await self._request(
            "POST",
            "/api/chat",
            {"model": self._require_model(), "messages": messages, "stream": False},
        )
        return (data.get("message") or {}).get("content") or ""

    async def chat_stream(
        self,
        input: str,
        *,
        system_prompt: Optional[str] = None,
        callbacks: Optional[StreamCallbacks] = None,
        previous_response_id: Optional[str] = None,
        integrations: Optional[List[Any]] = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ) -> StreamChatResult:
        if integrations:
            logger.warning("Ollama does not support integrations; ignoring them")
        messages: List[MessageLike] = []
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=input))

        callbacks = callbacks or StreamCallbacks()
        try:
            content = await self.chat(messages)
        except LLMClientError as e:
            if callbacks.on_error:
                callbacks.on_error(StreamError(type="transport", message=e.message))
            raise
        if callbacks.on_message_start:
            callbacks.on_message_start()
        if callbacks.on_message_delta and content:
            callbacks.on_message_delta(content)
        if callbacks.on_message_end:
            callbacks.on_message_end()
        return StreamChatResult(content=content)


def create_llm_client(
    config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LLMClient:
    """Build the client matching ``config.server_type``."""
    config = config or get_config()
    client_cls = OllamaClient if config.server_type == "ollama" else LMStudioClient
    return client_cls(
        config.llm_base_url,
        config.llm_model,
        timeout=config.llm_timeout_seconds,
        stream_timeout=config.stream_idle_timeout_seconds,
        transport=transport,
    )


__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMStreamError",
    "LMStudioClient",
    "OllamaClient",
    "create_llm_client",
]
