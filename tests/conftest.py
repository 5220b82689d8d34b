"""Shared fixtures: an isolated config and a scratch vault per test."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from vault_agent.models.stream import StreamCallbacks, StreamChatResult
from vault_agent.services import config as config_module
from vault_agent.services.file_store import LocalVaultStore
from vault_agent.services.llm_client import LLMClient
from vault_agent.services.operation_log import OperationExecutor, OperationLog
from vault_agent.services.tool_registry import ToolRegistry, build_default_registry

ENV_KEYS = [
    "VAULT_AGENT_SERVER_TYPE",
    "VAULT_AGENT_LLM_URL",
    "VAULT_AGENT_MODEL",
    "VAULT_AGENT_LLM_TIMEOUT",
    "VAULT_AGENT_STREAM_TIMEOUT",
    "VAULT_AGENT_MAX_ITERATIONS",
    "VAULT_AGENT_UNDO_CAPACITY",
    "VAULT_AGENT_SCOPE",
    "VAULT_AGENT_RPC_HOST",
    "VAULT_AGENT_RPC_PORT",
    "VAULT_AGENT_UPDATE_LINKS",
    "VAULT_AGENT_LOG_LEVEL",
]


class ScriptedLLM(LLMClient):
    """LLM double that replays canned replies in order."""

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None):
        super().__init__("http://llm.test", model="test-model", timeout=5.0)
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[List[Dict[str, str]]] = []

    async def list_models(self) -> List[str]:
        return ["test-model"]

    async def _chat(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if not self.replies:
            return "Out of script."
        return self.replies.pop(0)

    async def chat_stream(
        self,
        input: str,
        *,
        system_prompt=None,
        callbacks: Optional[StreamCallbacks] = None,
        previous_response_id=None,
        integrations=None,
        temperature: float = 0.7,
    ) -> StreamChatResult:
        return StreamChatResult(content=await self.chat([{"role": "user", "content": input}]))


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path: Path):
    """Point the config at a scratch vault and clear the cache around each test."""
    monkeypatch.setenv("VAULT_AGENT_VAULT_PATH", str(tmp_path / "vault"))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    config_module.get_config.cache_clear()
    yield
    config_module.get_config.cache_clear()


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir(exist_ok=True)
    return root


@pytest.fixture
def write_note(vault_root: Path):
    """Write a file under the scratch vault, creating parent folders."""

    def _write(relative: str, content: str) -> Path:
        path = vault_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def store(vault_root: Path) -> LocalVaultStore:
    return LocalVaultStore(root=vault_root)


@pytest.fixture
def executor(store: LocalVaultStore) -> OperationExecutor:
    return OperationExecutor(store)


@pytest.fixture
def operation_log(executor: OperationExecutor) -> OperationLog:
    return OperationLog(capacity=10, executor=executor)


@pytest.fixture
def registry(store: LocalVaultStore, operation_log: OperationLog) -> ToolRegistry:
    return build_default_registry(store, operation_log)


@pytest.fixture
def make_llm():
    """Factory for ``ScriptedLLM`` instances."""
    return ScriptedLLM
