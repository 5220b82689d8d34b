"""Wiring of the shared store, undo log, registry and LLM client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import AppConfig, get_config
from .file_store import LocalVaultStore
from .llm_client import LLMClient, create_llm_client
from .operation_log import OperationExecutor, OperationLog
from .path_locks import PathLockManager
from .tool_registry import ToolRegistry, build_default_registry


@dataclass
class VaultRuntime:
    """One process-wide set of collaborators.

    The agent loop and the RPC server share the same store and operation log,
    so an action taken through either can be undone from the other.
    """

    config: AppConfig
    store: LocalVaultStore
    operation_log: OperationLog
    registry: ToolRegistry
    llm: LLMClient


def build_runtime(
    config: Optional[AppConfig] = None,
    active_path: Optional[str] = None,
    llm: Optional[LLMClient] = None,
) -> VaultRuntime:
    config = config or get_config()
    store = LocalVaultStore(config=config, active_path=active_path)
    operation_log = OperationLog(
        capacity=config.undo_capacity, executor=OperationExecutor(store)
    )
    registry = build_default_registry(store, operation_log, config, locks=PathLockManager())
    return VaultRuntime(
        config=config,
        store=store,
        operation_log=operation_log,
        registry=registry,
        llm=llm or create_llm_client(config),
    )


__all__ = ["VaultRuntime", "build_runtime"]
