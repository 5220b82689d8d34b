"""End-to-end agent runs against a real vault, followed by undo."""

import json

import pytest

from vault_agent.models.agent import ContextScope
from vault_agent.services.agent import VaultAgent


def call(tool: str, **params) -> str:
    return f"Sure.\n```json\n{json.dumps({'tool': tool, 'params': params})}\n```"


@pytest.mark.asyncio
async def test_create_note_then_undo(make_llm, registry, store, operation_log, vault_root) -> None:
    llm = make_llm(
        [
            call("create_note", folder="Projects", name="Launch", content="# Launch\n\nShip it."),
            call("final_answer", answer="Created Projects/Launch.md", sources=["Projects/Launch.md"]),
        ]
    )
    agent = VaultAgent(llm, registry, store)

    result = await agent.run("Create a launch note in Projects", ContextScope.VAULT)

    assert result.answer == "Created Projects/Launch.md"
    assert result.actions_performed == ["Created note: Projects/Launch.md"]
    assert (vault_root / "Projects" / "Launch.md").read_text() == "# Launch\n\nShip it."

    entry = await operation_log.undo()

    assert entry.description == "Created note: Projects/Launch.md"
    assert not (vault_root / "Projects").exists()


@pytest.mark.asyncio
async def test_reorganise_and_undo_step_by_step(make_llm, registry, store, operation_log, write_note) -> None:
    write_note("inbox/idea.md", "# Idea")
    write_note("index.md", "- [[idea]]")
    llm = make_llm(
        [
            call("move_file", sourcePath="inbox/idea.md", targetFolder="archive"),
            call("rename_file", path="archive/idea.md", newName="old-idea"),
            call("final_answer", answer="Archived."),
        ]
    )

    result = await VaultAgent(llm, registry, store).run("archive my idea")

    assert result.actions_performed == [
        "Moved file to: archive/idea.md",
        "Renamed file to: archive/old-idea.md",
    ]
    assert await store.read("index.md") == "- [[old-idea]]"
    assert len(operation_log) == 2

    await operation_log.undo()
    assert await store.stat("archive/idea.md") == "file"
    assert await store.read("index.md") == "- [[idea]]"

    await operation_log.undo()
    assert await store.stat("inbox/idea.md") == "file"
    assert await store.stat("archive") is None


@pytest.mark.asyncio
async def test_runaway_model_is_bounded(make_llm, registry, store) -> None:
    llm = make_llm([call("search_vault", query="nothing here") for _ in range(20)])

    result = await VaultAgent(llm, registry, store, max_iterations=4).run("search forever")

    assert len(llm.calls) == 4
    assert result.answer
    assert result.iterations == 4
