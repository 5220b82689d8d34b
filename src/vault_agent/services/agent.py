"""Agent loop: model text -> tool call -> dispatch -> feed back, until done."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from ..models.agent import (
    AgentResult,
    AgentStep,
    ChatMessage,
    ContextScope,
    FinalAnswerStep,
    ToolCallStep,
)
from ..models.tools import ToolResult, ToolSchema
from .file_store import FileStore
from .llm_client import LLMClient
from .prompt_loader import PromptLoader
from .tool_call_parser import extract_tool_call
from .tool_registry import FINAL_ANSWER_TOOL, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5
MAX_ITERATIONS_ANSWER = (
    "I reached the maximum number of iterations without completing the task. "
    "Please try rephrasing your request."
)

ACTION_SUMMARIES: Dict[str, str] = {
    "create_note": "Created note: {path}",
    "append_to_note": "Appended content to: {path}",
    "rename_file": "Renamed file to: {path}",
    "rename_folder": "Renamed folder to: {path}",
    "move_file": "Moved file to: {path}",
    "delete_note": "Deleted note: {path}",
    "create_folder": "Created folder: {path}",
    "delete_folder": "Deleted folder: {path}",
    "edit_section": "Edited section in: {path}",
    "replace_text": "Replaced text in: {path}",
    "merge_notes": "Merged notes into: {path}",
}

PLACEHOLDERS: Dict[str, Any] = {
    "string": "...",
    "number": 0,
    "integer": 0,
    "boolean": False,
    "array": ["..."],
    "object": {},
}


def tool_example(schema: ToolSchema) -> str:
    """JSON block showing how the model should invoke ``schema``."""
    params = {
        name: PLACEHOLDERS.get(prop.type, "...")
        for name, prop in schema.input_schema.properties.items()
    }
    return json.dumps({"tool": schema.name, "params": params}, indent=2)


def error_answer(error: Exception) -> str:
    return f"I encountered an error: {error}. Please try again."


class VaultAgent:
    """Runs the bounded tool-calling loop for one user request.

    The loop is sequential: each tool result is folded into the conversation
    before the next model call. At most ``max_iterations`` model calls are
    made per run.
    """

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        store: FileStore,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        prompt_loader: Optional[PromptLoader] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.llm = llm
        self.registry = registry
        self.store = store
        self.max_iterations = max_iterations
        self.prompts = prompt_loader or PromptLoader()

    def system_prompt(self) -> str:
        tools = [
            {"name": s.name, "description": s.description, "example": tool_example(s)}
            for s in self.registry.schemas(include_internal=True)
        ]
        return self.prompts.load(
            "agent/system.md", {"tools": tools, "max_iterations": self.max_iterations}
        )

    async def user_prompt(self, query: str, scope: ContextScope) -> str:
        return self.prompts.load(
            "agent/user.md",
            {
                "query": query,
                "current_path": await self.store.active_document(),
                "scope_description": scope.describe(),
            },
        )

    async def build_messages(
        self,
        query: str,
        scope: ContextScope,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> List[ChatMessage]:
        return [
            ChatMessage(role="system", content=self.system_prompt()),
            *(history or []),
            ChatMessage(role="user", content=await self.user_prompt(query, scope)),
        ]

    async def run(
        self,
        query: str,
        scope: ContextScope = ContextScope.CURRENT,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> AgentResult:
        """Execute the loop and return the answer with its audit trail."""
        steps: List[AgentStep] = []
        actions: List[str] = []
        messages = await self.build_messages(query, scope, history)
        started = time.perf_counter()

        def finish(answer: str, sources: Optional[List[str]] = None, error: Optional[str] = None,
                   iterations: int = 0) -> AgentResult:
            logger.info(
                "Agent run finished",
                extra={
                    "iterations": iterations,
                    "steps": len(steps),
                    "error": error,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                },
            )
            return AgentResult(
                answer=answer,
                sources=sources or [],
                steps=steps,
                actions_performed=actions,
                iterations=iterations,
                error=error,
            )

        for iteration in range(1, self.max_iterations + 1):
            logger.debug(f"Agent iteration {iteration}", extra={"iteration": iteration})
            try:
                response = await self.llm.chat(messages)
                if not response or not response.strip():
                    raise ValueError("No response from LLM")
            except Exception as e:
                logger.exception(f"Agent iteration {iteration} failed: {e}")
                return finish(error_answer(e), error=str(e), iterations=iteration)

            call = extract_tool_call(response)
            if call is None:
                logger.debug("No tool call found, treating response as the answer")
                return finish(response, iterations=iteration)

            if call.tool == FINAL_ANSWER_TOOL:
                answer = call.params.get("answer")
                if not isinstance(answer, str) or not answer.strip():
                    answer = response
                raw_sources = call.params.get("sources")
                sources = [str(s) for s in raw_sources] if isinstance(raw_sources, list) else []
                steps.append(FinalAnswerStep(answer=answer, sources=sources))
                return finish(answer, sources, iterations=iteration)

            result = await self.registry.dispatch(call.tool, call.params)
            steps.append(ToolCallStep(call=call, result=result))
            summary = self._summarize(call.tool, result)
            if summary:
                actions.append(summary)

            messages.append(ChatMessage(role="assistant", content=response))
            messages.append(
                ChatMessage(role="user", content=f"Tool result for {call.tool}:\n{result.result}")
            )

        return finish(MAX_ITERATIONS_ANSWER, iterations=self.max_iterations)

    @staticmethod
    def _summarize(tool: str, result: ToolResult) -> Optional[str]:
        template = ACTION_SUMMARIES.get(tool)
        if not template or not result.success or not isinstance(result.data, dict):
            return None
        path = result.data.get("path")
        return template.format(path=path) if path else None


__all__ = ["MAX_ITERATIONS_ANSWER", "VaultAgent", "error_answer", "tool_example"]
