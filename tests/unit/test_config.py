from pathlib import Path

import pytest
from pydantic import ValidationError

from vault_agent.models.agent import ContextScope
from vault_agent.services import config as config_module
from vault_agent.services.config import AppConfig, is_loopback_host


def test_get_config_defaults(tmp_path: Path) -> None:
    cfg = config_module.reload_config()

    assert cfg.vault_path == (tmp_path / "vault").resolve()
    assert cfg.vault_path.is_dir()
    assert cfg.server_type == "lmstudio"
    assert cfg.llm_base_url == "http://localhost:1234"
    assert cfg.max_iterations == 5
    assert cfg.undo_capacity == 10
    assert cfg.default_scope == ContextScope.CURRENT
    assert cfg.rpc_url == "http://127.0.0.1:3456/mcp"
    assert cfg.update_links is True


def test_get_config_is_cached() -> None:
    assert config_module.get_config() is config_module.get_config()


def test_ollama_gets_its_own_default_url(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_SERVER_TYPE", "ollama")

    cfg = config_module.reload_config()

    assert cfg.llm_base_url == "http://localhost:11434"


def test_explicit_url_trailing_slash_is_stripped(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_LLM_URL", "http://127.0.0.1:9999/")

    assert config_module.reload_config().llm_base_url == "http://127.0.0.1:9999"


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_MAX_ITERATIONS", "8")
    monkeypatch.setenv("VAULT_AGENT_SCOPE", "vault")
    monkeypatch.setenv("VAULT_AGENT_UPDATE_LINKS", "false")
    monkeypatch.setenv("VAULT_AGENT_LOG_LEVEL", "debug")

    cfg = config_module.reload_config()

    assert cfg.max_iterations == 8
    assert cfg.default_scope == ContextScope.VAULT
    assert cfg.update_links is False
    assert cfg.log_level == "DEBUG"


def test_rejects_non_loopback_rpc_host(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_RPC_HOST", "0.0.0.0")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_rejects_out_of_range_iterations(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_MAX_ITERATIONS", "0")

    with pytest.raises(ValidationError):
        config_module.reload_config()


def test_rejects_unknown_server_type(monkeypatch) -> None:
    monkeypatch.setenv("VAULT_AGENT_SERVER_TYPE", "openai")

    with pytest.raises(ValidationError):
        config_module.reload_config()


def test_config_is_frozen(tmp_path: Path) -> None:
    cfg = AppConfig(vault_path=tmp_path)

    with pytest.raises(ValidationError):
        cfg.rpc_port = 1


@pytest.mark.parametrize(
    "host,expected",
    [
        ("127.0.0.1", True),
        ("localhost", True),
        ("::1", True),
        ("[::1]", True),
        ("0.0.0.0", False),
        ("192.168.1.10", False),
        ("example.com", False),
    ],
)
def test_is_loopback_host(host: str, expected: bool) -> None:
    assert is_loopback_host(host) is expected
