import pytest

from vault_agent.models.agent import ContextScope
from vault_agent.services.agentic_search import AgenticSearch, extract_search_terms
from vault_agent.services.llm_client import LLMClientError


def test_extract_search_terms() -> None:
    assert extract_search_terms("What did I write about the garden irrigation plans?") == [
        "irrigation",
        "garden",
        "write",
        "plans",
    ]


class TestAgenticSearch:
    @pytest.mark.asyncio
    async def test_answers_from_matching_notes(self, make_llm, store, write_note) -> None:
        write_note("garden.md", "# Garden\nIrrigation runs at dawn.")
        write_note("other.md", "unrelated")
        llm = make_llm(["Irrigation runs at dawn (garden.md)."])

        result = await AgenticSearch(llm, store).search("when does irrigation run?")

        assert result.answer == "Irrigation runs at dawn (garden.md)."
        assert result.sources == ["garden.md"]
        assert [s.action for s in result.steps] == ["Extract search terms", "Search vault", "Generate answer"]
        prompt = llm.calls[0][-1]["content"]
        assert "## From: garden.md" in prompt

    @pytest.mark.asyncio
    async def test_context_is_capped(self, make_llm, store, write_note) -> None:
        for i in range(5):
            write_note(f"n{i}.md", "keyword " + "x" * 3000)
        llm = make_llm(["ok"])

        result = await AgenticSearch(llm, store).search("keyword")

        assert len(result.sources) == 3
        assert llm.calls[0][-1]["content"].count("[Content truncated...]") == 3

    @pytest.mark.asyncio
    async def test_no_matches(self, make_llm, store) -> None:
        llm = make_llm()

        result = await AgenticSearch(llm, store).search("quantum physics", ContextScope.FOLDER)

        assert 'I couldn\'t find any notes matching "quantum physics" in the current folder.' in result.answer
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_llm_error_is_reported(self, make_llm, store, write_note) -> None:
        write_note("a.md", "keyword")
        llm = make_llm(error=LLMClientError("offline"))

        result = await AgenticSearch(llm, store).search("keyword")

        assert result.answer == (
            "I found relevant notes but encountered an error generating the answer: offline"
        )
        assert result.sources == ["a.md"]
