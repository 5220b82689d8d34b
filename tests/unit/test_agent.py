"""Unit tests for the agent control loop."""

import json

import pytest

from vault_agent.models.agent import ChatMessage, ContextScope, FinalAnswerStep, ToolCallStep
from vault_agent.services.agent import MAX_ITERATIONS_ANSWER, VaultAgent, tool_example
from vault_agent.services.llm_client import LLMClientError


def call(tool: str, **params) -> str:
    return "```json\n" + json.dumps({"tool": tool, "params": params}) + "\n```"


@pytest.fixture
def agent_for(make_llm, registry, store):
    def _build(replies=None, error=None, max_iterations=5):
        llm = make_llm(replies, error)
        return VaultAgent(llm, registry, store, max_iterations=max_iterations), llm

    return _build


class TestTermination:
    @pytest.mark.asyncio
    async def test_plain_text_is_the_answer(self, agent_for) -> None:
        agent, llm = agent_for(["Paris is the capital of France."])

        result = await agent.run("capital of France?")

        assert result.answer == "Paris is the capital of France."
        assert result.steps == []
        assert result.iterations == 1
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_final_answer_tool(self, agent_for) -> None:
        agent, _ = agent_for([call("final_answer", answer="All done.", sources=["a.md"])])

        result = await agent.run("finish")

        assert result.answer == "All done."
        assert result.sources == ["a.md"]
        assert isinstance(result.steps[-1], FinalAnswerStep)

    @pytest.mark.asyncio
    async def test_final_answer_without_text_uses_raw_response(self, agent_for) -> None:
        reply = call("final_answer", answer="")
        agent, _ = agent_for([reply])

        result = await agent.run("finish")

        assert result.answer == reply

    @pytest.mark.asyncio
    async def test_iteration_cap(self, agent_for) -> None:
        replies = [call("list_folder", path="/") for _ in range(10)]
        agent, llm = agent_for(replies, max_iterations=3)

        result = await agent.run("loop forever")

        assert result.answer == MAX_ITERATIONS_ANSWER
        assert len(llm.calls) == 3
        assert len(result.steps) == 3

    @pytest.mark.asyncio
    async def test_llm_failure_becomes_error_answer(self, agent_for) -> None:
        agent, _ = agent_for(error=LLMClientError("Request timeout"))

        result = await agent.run("anything")

        assert result.answer == "I encountered an error: Request timeout. Please try again."
        assert result.error == "Request timeout"

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error(self, agent_for) -> None:
        agent, _ = agent_for(["   "])

        result = await agent.run("anything")

        assert result.answer.startswith("I encountered an error:")

    def test_max_iterations_must_be_positive(self, make_llm, registry, store) -> None:
        with pytest.raises(ValueError):
            VaultAgent(make_llm(), registry, store, max_iterations=0)


class TestToolFeedback:
    @pytest.mark.asyncio
    async def test_tool_result_is_fed_back(self, agent_for, write_note) -> None:
        write_note("ideas.md", "rocket garden")
        agent, llm = agent_for(
            [call("read_note", path="ideas"), call("final_answer", answer="You wrote about rockets.")]
        )

        result = await agent.run("what did I write?")

        assert result.answer == "You wrote about rockets."
        assert isinstance(result.steps[0], ToolCallStep)
        assert result.steps[0].result.success is True
        second_call = llm.calls[1]
        assert second_call[-2]["role"] == "assistant"
        assert second_call[-1]["content"].startswith("Tool result for read_note:\n")
        assert "rocket garden" in second_call[-1]["content"]

    @pytest.mark.asyncio
    async def test_failed_tool_does_not_stop_the_loop(self, agent_for) -> None:
        agent, llm = agent_for(
            [call("read_note", path="missing"), call("final_answer", answer="It does not exist.")]
        )

        result = await agent.run("read missing")

        assert result.steps[0].result.success is False
        assert result.answer == "It does not exist."
        assert "Note not found: missing" in llm.calls[1][-1]["content"]

    @pytest.mark.asyncio
    async def test_actions_are_summarised(self, agent_for, operation_log) -> None:
        agent, _ = agent_for(
            [
                call("create_note", folder="/", name="todo", content="- [ ] milk"),
                call("final_answer", answer="Created."),
            ]
        )

        result = await agent.run("make a todo note")

        assert result.actions_performed == ["Created note: todo.md"]
        assert len(operation_log) == 1


class TestPrompts:
    @pytest.mark.asyncio
    async def test_messages_include_history_and_scope(self, agent_for) -> None:
        agent, llm = agent_for(["ok"])
        history = [ChatMessage(role="user", content="earlier"), ChatMessage(role="assistant", content="reply")]

        await agent.run("now", ContextScope.VAULT, history)

        messages = llm.calls[0]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert "the entire vault" in messages[-1]["content"]
        assert 'User request: "now"' in messages[-1]["content"]

    def test_system_prompt_advertises_every_tool(self, agent_for) -> None:
        agent, _ = agent_for()

        prompt = agent.system_prompt()

        for name in agent.registry.names():
            assert name in prompt

    def test_tool_example_uses_placeholders(self, registry) -> None:
        example = json.loads(tool_example(registry.get("merge_notes").schema))

        assert example == {"tool": "merge_notes", "params": {"sourcePaths": ["..."], "targetPath": "..."}}
