"""Service layer: vault storage, undo log, tools, agent loop and LLM clients."""

from .agent import VaultAgent
from .agentic_search import AgenticSearch, AgenticSearchResult
from .config import AppConfig, get_config, reload_config
from .file_store import (
    FileStore,
    FileStoreError,
    LocalVaultStore,
    NoteExistsError,
    NoteNotFoundError,
    PathEscapeError,
)
from .link_updater import LinkUpdater, rewrite_links
from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMStreamError,
    LMStudioClient,
    OllamaClient,
    create_llm_client,
)
from .operation_log import OperationError, OperationExecutor, OperationLog
from .path_locks import PathLockManager
from .prompt_loader import PromptLoader, PromptLoaderError
from .runtime import VaultRuntime, build_runtime
from .stream_decoder import ChatStreamDecoder
from .tool_call_parser import extract_tool_call
from .tool_registry import (
    ToolRegistrationError,
    ToolRegistry,
    ToolSpec,
    VaultTools,
    build_default_registry,
)
from .vault_search import VaultSearch

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "FileStore",
    "FileStoreError",
    "LocalVaultStore",
    "NoteExistsError",
    "NoteNotFoundError",
    "PathEscapeError",
    "OperationError",
    "OperationExecutor",
    "OperationLog",
    "LinkUpdater",
    "rewrite_links",
    "PathLockManager",
    "ToolRegistrationError",
    "ToolRegistry",
    "ToolSpec",
    "VaultTools",
    "build_default_registry",
    "extract_tool_call",
    "VaultAgent",
    "VaultSearch",
    "AgenticSearch",
    "AgenticSearchResult",
    "LLMClient",
    "LLMClientError",
    "LLMStreamError",
    "LMStudioClient",
    "OllamaClient",
    "create_llm_client",
    "ChatStreamDecoder",
    "PromptLoader",
    "PromptLoaderError",
    "VaultRuntime",
    "build_runtime",
]
