"""Tool registry and dispatcher for vault actions.

Every tool is registered with a declared parameter schema. ``dispatch`` checks
and coerces arguments against that schema and converts every failure into a
``ToolResult`` instead of raising. Mutating tools plan a composite operation,
lock every path it touches, re-plan under those locks and push one undo entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import inspect
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from ..models.agent import ContextScope
from ..models.operations import Operation, OperationKind
from ..models.tools import ToolInputSchema, ToolParameter, ToolResult, ToolSchema
from .config import AppConfig
from .file_store import (
    NOTE_SUFFIX,
    FileStore,
    FileStoreError,
    NoteNotFoundError,
    join_path,
    name_of,
    normalize_path,
    parent_of,
)
from .link_updater import LinkUpdater
from .operation_log import OperationError, OperationExecutor, OperationLog
from .path_locks import PathLockManager, lock_key
from .vault_search import VaultSearch

logger = logging.getLogger(__name__)

TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
JSON_TYPES = {"string", "number", "integer", "boolean", "array", "object"}
FINAL_ANSWER_TOOL = "final_answer"

READ_TRUNCATE_CHARS = 3000
SEARCH_MAX_FILES = 5
SEARCH_MATCHES_PER_FILE = 2
SNIPPET_CHARS = 100
GREP_MATCHES_PER_FILE = 5
GREP_MAX_FILES = 10
HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
MAX_PLAN_ATTEMPTS = 5

TRUE_STRINGS = {"true", "yes", "1"}
FALSE_STRINGS = {"false", "no", "0", ""}

ToolHandler = Callable[..., Awaitable[ToolResult]]


def coerce_argument(json_type: str, value: Any) -> Any:
    """Convert ``value`` to the declared JSON type, or raise ValueError.

    Models often quote scalars (``"false"``, ``"3"``); those are converted.
    """
    if json_type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
            return value.strip().lower() in TRUE_STRINGS
        raise ValueError(f"expected a boolean, got {value!r}")
    if json_type == "integer":
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
        raise ValueError(f"expected an integer, got {value!r}")
    if json_type == "number":
        if isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            return float(value)
        raise ValueError(f"expected a number, got {value!r}")
    return value


class ToolRegistrationError(Exception):
    """Raised when a tool is registered with an invalid declaration."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


@dataclass(frozen=True)
class ToolSpec:
    """A tool declaration bound to its handler.

    ``internal`` tools are offered to the in-process agent only and are
    hidden from RPC clients.
    """

    schema: ToolSchema
    handler: ToolHandler
    internal: bool = False

    @property
    def name(self) -> str:
        return self.schema.name


def tool_schema(
    name: str,
    description: str,
    properties: Dict[str, Tuple[str, str]],
    required: Optional[List[str]] = None,
) -> ToolSchema:
    """Build a schema from ``{param: (json_type, description)}``."""
    params = {}
    for param, (json_type, doc) in properties.items():
        items = {"type": "string"} if json_type == "array" else None
        params[param] = ToolParameter(type=json_type, description=doc, items=items)
    return ToolSchema(
        name=name,
        description=description,
        inputSchema=ToolInputSchema(properties=params, required=list(required or [])),
    )


class ToolRegistry:
    """Maps tool names to handlers validated against their declared schema."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        name = spec.name
        schema = spec.schema.input_schema
        if not TOOL_NAME_PATTERN.match(name):
            raise ToolRegistrationError(f"Invalid tool name: {name!r}")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {name}")
        if schema.type != "object":
            raise ToolRegistrationError(f"Tool {name} input schema must be an object")
        unknown_types = {
            param: prop.type for param, prop in schema.properties.items()
            if prop.type not in JSON_TYPES
        }
        if unknown_types:
            raise ToolRegistrationError(
                f"Tool {name} declares unknown parameter types", {"params": unknown_types}
            )
        undeclared = [p for p in schema.required if p not in schema.properties]
        if undeclared:
            raise ToolRegistrationError(
                f"Tool {name} references undeclared parameters: {', '.join(undeclared)}"
            )
        if not inspect.iscoroutinefunction(spec.handler):
            raise ToolRegistrationError(f"Tool {name} handler must be a coroutine function")
        self._tools[name] = spec
        logger.debug(f"Registered tool: {name}")

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self, include_internal: bool = False) -> List[ToolSchema]:
        return [
            spec.schema for spec in self._tools.values()
            if include_internal or not spec.internal
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolResult:
        """Execute a tool by name. Never raises."""
        spec = self._tools.get(name)
        if spec is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult.fail(f"Unknown tool: {name}")

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return ToolResult.fail(f"Arguments for {name} must be an object")

        schema = spec.schema.input_schema
        missing = [param for param in schema.required if arguments.get(param) is None]
        if missing:
            return ToolResult.fail(
                f"Missing required parameter(s) for {name}: {', '.join(missing)}"
            )

        kwargs = {key: value for key, value in arguments.items() if key in schema.properties}
        ignored = sorted(set(arguments) - set(kwargs))
        if ignored:
            logger.debug(f"Ignoring undeclared arguments for {name}: {ignored}")

        for param, value in list(kwargs.items()):
            if value is None:
                continue
            try:
                kwargs[param] = coerce_argument(schema.properties[param].type, value)
            except ValueError as e:
                return ToolResult.fail(f"Invalid arguments for {name}: {param} {e}")

        start = time.perf_counter()
        try:
            logger.info(
                f"Executing tool: {name}",
                extra={"tool": name, "args_keys": list(kwargs.keys())},
            )
            result = await spec.handler(**kwargs)
        except (FileStoreError, OperationError) as e:
            logger.warning(f"Tool {name} failed: {e}")
            result = ToolResult.fail(e.message)
        except (TypeError, ValueError) as e:
            logger.warning(f"Tool {name} validation error: {e}")
            result = ToolResult.fail(f"Invalid arguments for {name}: {e}")
        except Exception as e:
            logger.exception(f"Tool {name} execution failed: {e}")
            result = ToolResult.fail(f"Error executing {name}: {e}")

        logger.debug(
            f"Tool {name} finished",
            extra={
                "tool": name,
                "success": result.success,
                "duration_ms": round((time.perf_counter() - start) * 1000, 1),
            },
        )
        return result


def _with_suffix(name: str) -> str:
    return name if name.endswith(NOTE_SUFFIX) else f"{name}{NOTE_SUFFIX}"


def _truncate(content: str, limit: int = READ_TRUNCATE_CHARS) -> str:
    if len(content) > limit:
        return content[:limit] + "\n\n[Content truncated...]"
    return content


def replace_section(content: str, heading: str, new_content: str) -> Optional[str]:
    """Replace the body under ``heading``, or return None when it is absent.

    The section runs from the heading line to the next heading of the same
    or a higher level, or to the end of the document.
    """
    lines = content.split("\n")
    wanted = heading.strip().lstrip("#").strip().lower()
    heading_index = -1
    level = 0
    for index, line in enumerate(lines):
        match = HEADING_PATTERN.match(line)
        if match and match.group(2).strip().lower() == wanted:
            heading_index = index
            level = len(match.group(1))
            break
    if heading_index == -1:
        return None

    end = len(lines)
    for index in range(heading_index + 1, len(lines)):
        match = HEADING_PATTERN.match(lines[index])
        if match and len(match.group(1)) <= level:
            end = index
            break

    new_lines = lines[: heading_index + 1] + ["", new_content, ""] + lines[end:]
    return "\n".join(new_lines)


@dataclass
class PlannedChange:
    """Operations a mutating tool intends to run, and what to report after.

    ``guard_paths`` are paths read while planning that no operation writes,
    such as the folder a note is created in.
    """

    operations: List[Operation]
    description: str
    result: ToolResult
    guard_paths: Tuple[str, ...] = field(default_factory=tuple)

    def touched_paths(self) -> Set[str]:
        paths = set(self.guard_paths)
        for op in self.operations:
            paths.add(op.source_path)
            if op.target_path:
                paths.add(op.target_path)
        return paths


Planner = Callable[[], Awaitable[Union[PlannedChange, ToolResult]]]


class VaultTools:
    """Handlers for the vault tool set."""

    def __init__(
        self,
        store: FileStore,
        operation_log: OperationLog,
        executor: Optional[OperationExecutor] = None,
        update_links: bool = True,
        locks: Optional[PathLockManager] = None,
    ) -> None:
        self.store = store
        self.log = operation_log
        self.executor = executor or operation_log.executor or OperationExecutor(store)
        if self.log.executor is None:
            self.log.executor = self.executor
        self.search = VaultSearch(store)
        self.links = LinkUpdater(store)
        self.update_links = update_links
        self.locks = locks or PathLockManager()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def resolve_note(self, path: str) -> str:
        """Find a note, trying the ``.md`` form first and the raw path second."""
        normalized = normalize_path(path)
        candidates = [normalized] if normalized.endswith(NOTE_SUFFIX) else [
            f"{normalized}{NOTE_SUFFIX}",
            normalized,
        ]
        for candidate in candidates:
            if candidate and await self.store.stat(candidate) == "file":
                return candidate
        raise NoteNotFoundError(f"Note not found: {path}", {"path": path})

    async def _record(self, operations: List[Operation], description: str) -> None:
        entry = await self.executor.execute_operations(operations, description)
        self.log.push(entry)
        logger.info(
            description,
            extra={"entry_id": entry.id, "steps": len(entry.operations)},
        )

    async def _commit(self, planner: Planner) -> ToolResult:
        """Plan, lock every path the plan touches, re-plan, then execute.

        A plan made under the locks is only executed when its paths are a
        subset of those held; otherwise the wider set is locked and the
        plan is made again.
        """
        held: Set[str] = set()
        for attempt in range(1, MAX_PLAN_ATTEMPTS + 1):
            async with self.locks.hold(held):
                planned = await planner()
                if isinstance(planned, ToolResult):
                    return planned
                needed = planned.touched_paths()
                held_keys = {lock_key(path) for path in held}
                if {lock_key(path) for path in needed} <= held_keys:
                    await self._record(planned.operations, planned.description)
                    return planned.result
            logger.debug(
                "Re-planning under wider path locks",
                extra={"attempt": attempt, "paths": sorted(needed)},
            )
            held |= needed
        raise OperationError(
            "The vault kept changing while the action was being planned; try again",
            {"paths": sorted(held)},
        )

    async def _link_ops(self, moves: List[Tuple[str, str]]) -> List[Operation]:
        if not self.update_links:
            return []
        return await self.links.plan_updates(moves)

    # ------------------------------------------------------------------
    # Read-only tools
    # ------------------------------------------------------------------

    async def search_vault(self, query: str) -> ToolResult:
        if not query.strip():
            return ToolResult.fail("Search query is required")
        results = await self.search.search(query, ContextScope.VAULT)
        if not results:
            return ToolResult.ok(f'No files found matching "{query}"', data=[])

        blocks = []
        for result in results[:SEARCH_MAX_FILES]:
            lines = [
                f"  - Line {match.line}: {match.content[:SNIPPET_CHARS]}..."
                for match in result.matches[:SEARCH_MATCHES_PER_FILE]
            ]
            blocks.append("\n".join([f"- {result.file_path}", *lines]))
        summary = "\n\n".join(blocks)
        return ToolResult.ok(
            f'Found {len(results)} file(s) matching "{query}":\n\n{summary}',
            data=[result.file_path for result in results],
        )

    async def read_note(self, path: str) -> ToolResult:
        note_path = await self.resolve_note(path)
        content = await self.store.read(note_path)
        return ToolResult.ok(
            f"Content of {note_path}:\n\n{_truncate(content)}", data={"path": note_path}
        )

    async def list_folder(self, path: str = "/") -> ToolResult:
        folder = normalize_path(path)
        display = path or "/"
        if await self.store.stat(folder) != "folder":
            return ToolResult.fail(f"Folder not found: {path}")
        entries = await self.store.list(folder)
        if not entries:
            return ToolResult.ok(f'Folder "{display}" is empty', data=[])
        items = [
            f"[folder] {entry.name}/" if entry.is_folder else f"[file] {entry.name}"
            for entry in entries
        ]
        return ToolResult.ok(
            f'Contents of "{display}":\n' + "\n".join(items),
            data=[entry.path for entry in entries],
        )

    async def grep_vault(self, pattern: str, folder: Optional[str] = None) -> ToolResult:
        if not pattern:
            return ToolResult.fail("Pattern is required")
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            return ToolResult.fail(f"Invalid regex pattern: {pattern}")

        scope = normalize_path(folder) if folder else ""
        matched_files: List[Tuple[str, List[str]]] = []
        for file_path in await self.store.list_markdown_files():
            if scope and not file_path.startswith(f"{scope}/"):
                continue
            content = await self.store.read(file_path)
            hits = [
                f"  Line {number}: {line[:SNIPPET_CHARS]}"
                for number, line in enumerate(content.split("\n"), start=1)
                if regex.search(line)
            ]
            if hits:
                matched_files.append((file_path, hits[:GREP_MATCHES_PER_FILE]))

        if not matched_files:
            return ToolResult.ok(f'No matches found for pattern "{pattern}"', data=[])
        summary = "\n\n".join(
            "\n".join([f"- {file_path}", *hits])
            for file_path, hits in matched_files[:GREP_MAX_FILES]
        )
        return ToolResult.ok(
            f'Found {len(matched_files)} file(s) matching pattern "{pattern}":\n\n{summary}',
            data=[file_path for file_path, _ in matched_files],
        )

    async def get_current_page(self) -> ToolResult:
        path = await self.store.active_document()
        if not path:
            return ToolResult.fail("No note is currently open")
        content = await self.store.read(path)
        return ToolResult.ok(
            f"Current page: {path}\n\n{_truncate(content)}", data={"path": path}
        )

    # ------------------------------------------------------------------
    # Mutating tools
    # ------------------------------------------------------------------

    async def create_note(self, folder: str, name: str, content: str) -> ToolResult:
        name = name.strip()
        if not name:
            return ToolResult.fail("Note name is required")
        folder_path = normalize_path(folder)
        full_path = join_path(folder_path, _with_suffix(name))

        async def plan() -> Union[PlannedChange, ToolResult]:
            if await self.store.exists(full_path):
                return ToolResult.fail(
                    f"A note already exists at {full_path}. Use append_to_note to add "
                    "content to it, or choose a different name."
                )
            operations = await self.executor.ensure_folder_ops(folder_path)
            operations.append(
                Operation(kind=OperationKind.CREATE_FILE, source_path=full_path, content=content or "")
            )
            return PlannedChange(
                operations,
                f"Created note: {full_path}",
                ToolResult.ok(f"Successfully created note at {full_path}", data={"path": full_path}),
                guard_paths=(folder_path,),
            )

        return await self._commit(plan)

    async def append_to_note(self, path: str, content: str) -> ToolResult:
        if not content:
            return ToolResult.fail("Content to append is required")

        async def plan() -> PlannedChange:
            note_path = await self.resolve_note(path)
            current = await self.store.read(note_path)
            operation = Operation(
                kind=OperationKind.MODIFY, source_path=note_path, content=f"{current}\n\n{content}"
            )
            return PlannedChange(
                [operation],
                f"Appended to note: {note_path}",
                ToolResult.ok(
                    f"Successfully appended content to {note_path}", data={"path": note_path}
                ),
            )

        return await self._commit(plan)

    async def rename_file(self, path: str, newName: str) -> ToolResult:
        new_name = newName.strip()
        if not new_name or "/" in new_name:
            return ToolResult.fail("New name must be a file name without a folder")

        async def plan() -> Union[PlannedChange, ToolResult]:
            note_path = await self.resolve_note(path)
            new_path = join_path(parent_of(note_path), _with_suffix(new_name))
            if await self.store.exists(new_path):
                return ToolResult.fail(f"A file already exists at {new_path}")
            operations = await self._link_ops([(note_path, new_path)])
            operations.append(
                Operation(kind=OperationKind.RENAME, source_path=note_path, target_path=new_path)
            )
            return PlannedChange(
                operations,
                f"Renamed file: {note_path} -> {new_path}",
                ToolResult.ok(
                    f"Successfully renamed file from {note_path} to {new_path}",
                    data={"path": new_path},
                ),
            )

        return await self._commit(plan)

    async def rename_folder(self, path: str, newName: str) -> ToolResult:
        folder = normalize_path(path)
        new_name = newName.strip()
        if not new_name or "/" in new_name:
            return ToolResult.fail("New name must be a folder name without a parent path")

        async def plan() -> Union[PlannedChange, ToolResult]:
            if not folder or await self.store.stat(folder) != "folder":
                return ToolResult.fail(f"Folder not found: {path}")
            new_path = join_path(parent_of(folder), new_name)
            if await self.store.exists(new_path):
                return ToolResult.fail(f"A folder already exists at {new_path}")
            moves = [
                (note, new_path + note[len(folder):])
                for note in await self.store.list_markdown_files(folder)
            ]
            operations = await self._link_ops(moves)
            operations.append(
                Operation(kind=OperationKind.RENAME, source_path=folder, target_path=new_path)
            )
            return PlannedChange(
                operations,
                f"Renamed folder: {folder} -> {new_path}",
                ToolResult.ok(
                    f"Successfully renamed folder from {folder} to {new_path}",
                    data={"path": new_path},
                ),
                guard_paths=tuple(p for move in moves for p in move),
            )

        return await self._commit(plan)

    async def move_file(self, sourcePath: str, targetFolder: str) -> ToolResult:
        target_folder = normalize_path(targetFolder)

        async def plan() -> Union[PlannedChange, ToolResult]:
            note_path = await self.resolve_note(sourcePath)
            new_path = join_path(target_folder, name_of(note_path))
            if await self.store.exists(new_path):
                return ToolResult.fail(f"A file already exists at {new_path}")
            operations = await self.executor.ensure_folder_ops(target_folder)
            operations.extend(await self._link_ops([(note_path, new_path)]))
            operations.append(
                Operation(kind=OperationKind.MOVE, source_path=note_path, target_path=new_path)
            )
            return PlannedChange(
                operations,
                f"Moved file: {note_path} -> {new_path}",
                ToolResult.ok(
                    f"Successfully moved file from {note_path} to {new_path}",
                    data={"path": new_path},
                ),
                guard_paths=(target_folder,),
            )

        return await self._commit(plan)

    async def delete_note(self, path: str) -> ToolResult:
        async def plan() -> PlannedChange:
            note_path = await self.resolve_note(path)
            return PlannedChange(
                [Operation(kind=OperationKind.DELETE, source_path=note_path)],
                f"Deleted note: {note_path}",
                ToolResult.ok(f"Successfully deleted note: {note_path}", data={"path": note_path}),
            )

        return await self._commit(plan)

    async def create_folder(self, path: str) -> ToolResult:
        folder = normalize_path(path)
        if not folder:
            return ToolResult.fail("Cannot create root folder")

        async def plan() -> Union[PlannedChange, ToolResult]:
            if await self.store.exists(folder):
                return ToolResult.fail(f"Folder already exists: {folder}")
            return PlannedChange(
                await self.executor.ensure_folder_ops(folder),
                f"Created folder: {folder}",
                ToolResult.ok(f"Successfully created folder: {folder}", data={"path": folder}),
                guard_paths=(folder,),
            )

        return await self._commit(plan)

    async def delete_folder(self, path: str) -> ToolResult:
        folder = normalize_path(path)
        if not folder:
            return ToolResult.fail("Cannot delete root folder")

        async def plan() -> Union[PlannedChange, ToolResult]:
            if await self.store.stat(folder) != "folder":
                return ToolResult.fail(f"Folder not found: {path}")
            if await self.store.list(folder):
                return ToolResult.fail(
                    f"Folder is not empty: {folder}. Delete or move its contents first."
                )
            return PlannedChange(
                [Operation(kind=OperationKind.DELETE, source_path=folder)],
                f"Deleted folder: {folder}",
                ToolResult.ok(f"Successfully deleted folder: {folder}", data={"path": folder}),
            )

        return await self._commit(plan)

    async def edit_section(self, path: str, heading: str, newContent: str) -> ToolResult:
        if not heading.strip():
            return ToolResult.fail("Heading is required")

        async def plan() -> Union[PlannedChange, ToolResult]:
            note_path = await self.resolve_note(path)
            content = await self.store.read(note_path)
            updated = replace_section(content, heading, newContent)
            if updated is None:
                return ToolResult.fail(f'Heading "{heading}" not found in {path}')
            return PlannedChange(
                [Operation(kind=OperationKind.MODIFY, source_path=note_path, content=updated)],
                f'Edited section "{heading}" in {note_path}',
                ToolResult.ok(
                    f'Successfully updated section "{heading}" in {note_path}',
                    data={"path": note_path},
                ),
            )

        return await self._commit(plan)

    async def replace_text(
        self, path: str, search: str, replace: str, replaceAll: bool = False
    ) -> ToolResult:
        if not search:
            return ToolResult.fail("Search text is required")

        async def plan() -> Union[PlannedChange, ToolResult]:
            note_path = await self.resolve_note(path)
            content = await self.store.read(note_path)
            if search not in content:
                return ToolResult.fail(f'Text "{search}" not found in {path}')
            if replaceAll is True:
                count = content.count(search)
                updated = content.replace(search, replace)
            else:
                count = 1
                updated = content.replace(search, replace, 1)
            return PlannedChange(
                [Operation(kind=OperationKind.MODIFY, source_path=note_path, content=updated)],
                f"Replaced text in {note_path}",
                ToolResult.ok(
                    f'Successfully replaced {count} occurrence(s) of "{search}" with "{replace}" '
                    f"in {note_path}",
                    data={"path": note_path, "count": count},
                ),
            )

        return await self._commit(plan)

    async def merge_notes(self, sourcePaths: List[str], targetPath: str) -> ToolResult:
        if not isinstance(sourcePaths, list) or not sourcePaths:
            return ToolResult.fail("At least one source note is required")
        target = _with_suffix(normalize_path(targetPath))
        if target == NOTE_SUFFIX:
            return ToolResult.fail("Target path is required")

        async def plan() -> Union[PlannedChange, ToolResult]:
            sources: List[str] = []
            for raw in sourcePaths:
                resolved = await self.resolve_note(str(raw))
                if resolved not in sources:
                    sources.append(resolved)

            sections = []
            for source in sources:
                body = await self.store.read(source)
                sections.append(f"# From: {name_of(source)}\n\n{body}")
            merged = "\n\n---\n\n".join(sections)

            target_kind = await self.store.stat(target)
            if target_kind == "folder":
                return ToolResult.fail(f"Target is a folder: {target}")
            if target_kind == "file":
                operations = [
                    Operation(kind=OperationKind.MODIFY, source_path=target, content=merged)
                ]
            else:
                operations = await self.executor.ensure_folder_ops(parent_of(target))
                operations.append(
                    Operation(kind=OperationKind.CREATE_FILE, source_path=target, content=merged)
                )
            operations.extend(
                Operation(kind=OperationKind.DELETE, source_path=source)
                for source in sources if source != target
            )
            return PlannedChange(
                operations,
                f"Merged {len(sources)} files into {target}",
                ToolResult.ok(
                    f"Successfully merged {len(sources)} note(s) into {target}",
                    data={"path": target, "sources": sources},
                ),
                guard_paths=tuple(sources),
            )

        return await self._commit(plan)

    async def final_answer(self, answer: str, sources: Optional[List[str]] = None) -> ToolResult:
        return ToolResult.ok(answer, data={"sources": list(sources or [])})

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def specs(self) -> List[ToolSpec]:
        path_doc = 'The path to the note (e.g., "folder/note.md")'
        return [
            ToolSpec(tool_schema(
                "search_vault",
                "Search for notes in the vault containing specific terms. Returns file "
                "paths and matching excerpts.",
                {"query": ("string", "The search query")},
                ["query"],
            ), self.search_vault),
            ToolSpec(tool_schema(
                "read_note",
                "Read the full content of a specific note. Use this to get more details "
                "from a note found in search results.",
                {"path": ("string", path_doc)},
                ["path"],
            ), self.read_note),
            ToolSpec(tool_schema(
                "create_note",
                "Create a new note in the vault. Use this when the user asks to create, "
                "write, or add a new note.",
                {
                    "folder": ("string", 'The folder path where to create the note (e.g., '
                               '"Projects"). Use "/" or an empty string for vault root.'),
                    "name": ("string", "The name of the note (without .md extension)"),
                    "content": ("string", "The markdown content of the note"),
                },
                ["folder", "name", "content"],
            ), self.create_note),
            ToolSpec(tool_schema(
                "append_to_note",
                "Append content to an existing note.",
                {"path": ("string", path_doc), "content": ("string", "The content to append")},
                ["path", "content"],
            ), self.append_to_note),
            ToolSpec(tool_schema(
                "list_folder",
                'List all files and subfolders in a folder. Use "/" for vault root.',
                {"path": ("string", "The folder path to list")},
                ["path"],
            ), self.list_folder),
            ToolSpec(tool_schema(
                "rename_file",
                "Rename a file in the vault. Links to it are updated.",
                {
                    "path": ("string", 'Current path to the file (e.g., "folder/old-name.md")'),
                    "newName": ("string", 'New name for the file (without path, e.g., "new-name.md")'),
                },
                ["path", "newName"],
            ), self.rename_file),
            ToolSpec(tool_schema(
                "rename_folder",
                "Rename a folder in the vault.",
                {
                    "path": ("string", 'Current path to the folder (e.g., "old-folder-name")'),
                    "newName": ("string", "New name for the folder (without path)"),
                },
                ["path", "newName"],
            ), self.rename_folder),
            ToolSpec(tool_schema(
                "move_file",
                "Move a file to a different folder in the vault.",
                {
                    "sourcePath": ("string", 'Current path to the file (e.g., "folder/note.md")'),
                    "targetFolder": ("string", 'Target folder path (e.g., "new-folder" or "/" for root)'),
                },
                ["sourcePath", "targetFolder"],
            ), self.move_file),
            ToolSpec(tool_schema(
                "delete_note",
                "Delete a note (move to trash). This can be undone.",
                {"path": ("string", "The path to the note to delete")},
                ["path"],
            ), self.delete_note),
            ToolSpec(tool_schema(
                "create_folder",
                "Create a new folder in the vault.",
                {"path": ("string", 'The path for the new folder (e.g., "Projects/NewFolder")')},
                ["path"],
            ), self.create_folder),
            ToolSpec(tool_schema(
                "delete_folder",
                "Delete an empty folder. The folder must be empty.",
                {"path": ("string", "The path to the folder to delete")},
                ["path"],
            ), self.delete_folder),
            ToolSpec(tool_schema(
                "grep_vault",
                "Search for content in the vault using a regex pattern. More powerful than "
                "search_vault for complex patterns.",
                {
                    "pattern": ("string", "The regex pattern to search for"),
                    "folder": ("string", "Optional folder to limit search scope (default: entire vault)"),
                },
                ["pattern"],
            ), self.grep_vault),
            ToolSpec(tool_schema(
                "edit_section",
                "Edit content under a specific heading in a note. Replaces all content from "
                "the heading to the next heading of same or higher level.",
                {
                    "path": ("string", "The path to the note"),
                    "heading": ("string", "The heading text to find (without # prefix)"),
                    "newContent": ("string", "The new content to replace the section with"),
                },
                ["path", "heading", "newContent"],
            ), self.edit_section),
            ToolSpec(tool_schema(
                "replace_text",
                "Find and replace text in a note.",
                {
                    "path": ("string", "The path to the note"),
                    "search": ("string", "The text to search for"),
                    "replace": ("string", "The text to replace with"),
                    "replaceAll": ("boolean", "Whether to replace all occurrences "
                                   "(default: false, replaces first only)"),
                },
                ["path", "search", "replace"],
            ), self.replace_text),
            ToolSpec(tool_schema(
                "get_current_page",
                "Read the note that is currently open.",
                {},
            ), self.get_current_page),
            ToolSpec(tool_schema(
                "merge_notes",
                "Merge several notes into one target note. Sources other than the target "
                "are moved to trash.",
                {
                    "sourcePaths": ("array", "Paths of the notes to merge, in order"),
                    "targetPath": ("string", "Path of the merged note"),
                },
                ["sourcePaths", "targetPath"],
            ), self.merge_notes),
            ToolSpec(tool_schema(
                FINAL_ANSWER_TOOL,
                "Provide your final response to the user.",
                {
                    "answer": ("string", "Your helpful response to the user"),
                    "sources": ("array", "Paths of notes used to answer"),
                },
                ["answer"],
            ), self.final_answer, internal=True),
        ]

    def register_all(self, registry: ToolRegistry) -> ToolRegistry:
        for spec in self.specs():
            registry.register(spec)
        return registry


def build_default_registry(
    store: FileStore,
    operation_log: OperationLog,
    config: Optional[AppConfig] = None,
    locks: Optional[PathLockManager] = None,
) -> ToolRegistry:
    """Create a registry holding the full vault tool set."""
    update_links = config.update_links if config is not None else True
    tools = VaultTools(store, operation_log, update_links=update_links, locks=locks)
    return tools.register_all(ToolRegistry())


__all__ = [
    "FINAL_ANSWER_TOOL",
    "PlannedChange",
    "ToolHandler",
    "ToolRegistrationError",
    "ToolRegistry",
    "ToolSpec",
    "VaultTools",
    "build_default_registry",
    "coerce_argument",
    "replace_section",
    "tool_schema",
]
