"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import ipaddress
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.agent import ContextScope

load_dotenv()

DEFAULT_VAULT_PATH = Path.cwd() / "vault"
DEFAULT_LLM_URLS = {
    "lmstudio": "http://localhost:1234",
    "ollama": "http://localhost:11434",
}
LOOPBACK_NAMES = {"localhost"}

ServerType = Literal["lmstudio", "ollama"]


def is_loopback_host(host: str) -> bool:
    """Return True when ``host`` names a loopback interface."""
    cleaned = (host or "").strip().strip("[]").lower()
    if cleaned in LOOPBACK_NAMES:
        return True
    try:
        return ipaddress.ip_address(cleaned).is_loopback
    except ValueError:
        return False


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    vault_path: Path = Field(..., description="Root directory of the Markdown vault")
    server_type: ServerType = Field(
        default="lmstudio", description="LLM backend flavour (lmstudio or ollama)"
    )
    llm_base_url: Optional[str] = Field(
        default=None, description="Base URL of the LLM backend (defaults per server type)"
    )
    llm_model: str = Field(default="", description="Model identifier sent to the backend")
    llm_timeout_seconds: float = Field(
        default=120.0, gt=0, description="Deadline for one non-streaming LLM call"
    )
    stream_idle_timeout_seconds: float = Field(
        default=300.0, gt=0, description="Read timeout between streamed chunks"
    )
    max_iterations: int = Field(
        default=5, ge=1, le=50, description="Agent loop iteration cap"
    )
    undo_capacity: int = Field(default=10, ge=1, description="Undo entries kept in memory")
    default_scope: ContextScope = Field(
        default=ContextScope.CURRENT, description="Context scope for agent runs"
    )
    rpc_host: str = Field(default="127.0.0.1", description="JSON-RPC bind address (loopback only)")
    rpc_port: int = Field(default=3456, ge=1, le=65535, description="JSON-RPC port")
    update_links: bool = Field(
        default=True, description="Rewrite links in other notes after a rename or move"
    )
    log_level: str = Field(default="INFO", description="Root log level for the CLI")

    @field_validator("vault_path", mode="before")
    @classmethod
    def _normalize_vault_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            raise ValueError("VAULT_AGENT_VAULT_PATH is required")
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("rpc_host")
    @classmethod
    def _ensure_loopback(cls, value: str) -> str:
        if not is_loopback_host(value):
            raise ValueError(
                f"RPC host must be a loopback address, got '{value}'"
            )
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @model_validator(mode="after")
    def _default_llm_url(self) -> "AppConfig":
        if not self.llm_base_url:
            object.__setattr__(self, "llm_base_url", DEFAULT_LLM_URLS[self.server_type])
        else:
            object.__setattr__(self, "llm_base_url", self.llm_base_url.rstrip("/"))
        return self

    @property
    def server_url(self) -> str:
        return f"http://{self.rpc_host}:{self.rpc_port}"

    @property
    def rpc_url(self) -> str:
        return f"{self.server_url}/mcp"


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _read_bool(key: str, default: str = "true") -> bool:
    return (_read_env(key, default) or default).lower() not in {"0", "false", "no"}


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    config = AppConfig(
        vault_path=_read_env("VAULT_AGENT_VAULT_PATH", str(DEFAULT_VAULT_PATH)),
        server_type=_read_env("VAULT_AGENT_SERVER_TYPE", "lmstudio"),
        llm_base_url=_read_env("VAULT_AGENT_LLM_URL"),
        llm_model=_read_env("VAULT_AGENT_MODEL", ""),
        llm_timeout_seconds=_read_env("VAULT_AGENT_LLM_TIMEOUT", "120"),
        stream_idle_timeout_seconds=_read_env("VAULT_AGENT_STREAM_TIMEOUT", "300"),
        max_iterations=_read_env("VAULT_AGENT_MAX_ITERATIONS", "5"),
        undo_capacity=_read_env("VAULT_AGENT_UNDO_CAPACITY", "10"),
        default_scope=_read_env("VAULT_AGENT_SCOPE", ContextScope.CURRENT.value),
        rpc_host=_read_env("VAULT_AGENT_RPC_HOST", "127.0.0.1"),
        rpc_port=_read_env("VAULT_AGENT_RPC_PORT", "3456"),
        update_links=_read_bool("VAULT_AGENT_UPDATE_LINKS"),
        log_level=_read_env("VAULT_AGENT_LOG_LEVEL", "INFO"),
    )
    # Ensure the vault directory exists for downstream services.
    config.vault_path.mkdir(parents=True, exist_ok=True)
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = [
    "AppConfig",
    "DEFAULT_LLM_URLS",
    "DEFAULT_VAULT_PATH",
    "get_config",
    "is_loopback_host",
    "reload_config",
]
