"""Single-pass search-then-answer mode that does not use tool calls."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.agent import ChatMessage, ContextScope
from ..models.search import SearchResult
from .file_store import FileStore
from .llm_client import LLMClient
from .prompt_loader import PromptLoader
from .vault_search import VaultSearch

logger = logging.getLogger(__name__)

MAX_TERMS = 5
MAX_FILES = 3
MAX_CHARS_PER_FILE = 1500
MAX_TOTAL_CHARS = 4000

STOP_WORDS = frozenset("""
a an the is are was were be been being have has had do does did will would could
should may might must shall can need dare ought used to of in for on with at by
from as into through during before after above below between under again further
then once here there when where why how all each few more most other some such no
nor not only own same so than too very just and but if or because until while what
which who whom this that these those am i my me you your we our they their it its
using currently about tell show find get give
""".split())

SCOPE_PHRASES = {
    ContextScope.CURRENT: "the current note",
    ContextScope.LINKED: "linked notes",
    ContextScope.FOLDER: "the current folder",
    ContextScope.VAULT: "your entire vault",
}


class SearchStep(BaseModel):
    iteration: int
    action: str
    query: Optional[str] = None
    reasoning: str
    results: List[SearchResult] = Field(default_factory=list)


class AgenticSearchResult(BaseModel):
    answer: str
    sources: List[str] = Field(default_factory=list)
    steps: List[SearchStep] = Field(default_factory=list)


def extract_search_terms(query: str) -> List[str]:
    """Keywords from ``query``: no stop words, unique, longest first, at most five."""
    words = re.sub(r"[^\w\s]", " ", query.lower()).split()
    unique: List[str] = []
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS and word not in unique:
            unique.append(word)
    return sorted(unique, key=len, reverse=True)[:MAX_TERMS]


class AgenticSearch:
    """Finds relevant notes by keyword and asks the model to answer from them."""

    def __init__(
        self,
        llm: LLMClient,
        store: FileStore,
        prompt_loader: Optional[PromptLoader] = None,
    ) -> None:
        self.llm = llm
        self.store = store
        self.search_service = VaultSearch(store)
        self.prompts = prompt_loader or PromptLoader()

    async def search(self, query: str, scope: ContextScope = ContextScope.VAULT) -> AgenticSearchResult:
        steps: List[SearchStep] = []
        terms = extract_search_terms(query)
        steps.append(
            SearchStep(
                iteration=1,
                action="Extract search terms",
                query=", ".join(terms),
                reasoning=f"Extracted keywords from query: {', '.join(terms)}",
            )
        )

        results = await self.search_service.search(" ".join(terms), scope)
        steps.append(
            SearchStep(
                iteration=2,
                action="Search vault",
                query=" ".join(terms),
                reasoning=f"Found {len(results)} file(s) with matches",
                results=results,
            )
        )

        sources: List[str] = []
        sections: List[str] = []
        total = 0
        for result in results[:MAX_FILES]:
            if total >= MAX_TOTAL_CHARS:
                break
            sources.append(result.file_path)
            content = await self.store.read(result.file_path)
            take = min(len(content), MAX_CHARS_PER_FILE, MAX_TOTAL_CHARS - total)
            excerpt = content[:take]
            marker = "\n\n[Content truncated...]" if len(content) > take else ""
            sections.append(f"## From: {result.file_name}\n\n{excerpt}{marker}")
            total += len(excerpt)

        if not sections:
            logger.info("No relevant content found", extra={"query": query, "scope": scope.value})
            return AgenticSearchResult(
                answer=(
                    f'I couldn\'t find any notes matching "{query}" in {SCOPE_PHRASES[scope]}. Try:\n'
                    "- Using different search terms\n"
                    "- Expanding the search scope\n"
                    "- Checking if the information exists in your vault"
                ),
                steps=steps,
            )

        steps.append(
            SearchStep(
                iteration=3,
                action="Generate answer",
                reasoning=f"Synthesizing answer from {len(sections)} source(s)",
            )
        )
        messages = [
            ChatMessage(role="system", content=self.prompts.load("search/system.md")),
            ChatMessage(
                role="user",
                content=self.prompts.load(
                    "search/answer.md",
                    {"query": query, "context": "\n\n---\n\n".join(sections)},
                ),
            ),
        ]
        try:
            answer = await self.llm.chat(messages)
        except Exception as e:
            logger.exception(f"Answer generation failed: {e}")
            answer = (
                "I found relevant notes but encountered an error generating the answer: "
                f"{e}"
            )
        return AgenticSearchResult(
            answer=answer or "Unable to generate an answer.", sources=sources, steps=steps
        )


__all__ = ["AgenticSearch", "AgenticSearchResult", "SearchStep", "extract_search_terms"]
