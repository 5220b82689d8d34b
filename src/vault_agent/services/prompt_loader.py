"""Jinja2-based prompt template loader.

Templates ship with the package under ``vault_agent/prompts/`` and are
re-read on every call so they can be edited without a restart. Minimal
inline prompts are used when a template file is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import jinja2

logger = logging.getLogger(__name__)

# vault_agent/services/prompt_loader.py -> vault_agent/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

INLINE_PROMPTS: Dict[str, str] = {
    "agent/system.md": """You are a helpful AI assistant working inside a Markdown notes vault.

## Available Tools
{% for tool in tools %}
### {{ tool.name }}
{{ tool.description }}
```json
{{ tool.example }}
```
{% endfor %}
Respond with ONLY the JSON block for one tool at a time, wait for its result,
and always finish with the final_answer tool. Maximum {{ max_iterations }} tool calls.
""",
    "agent/user.md": """User request: "{{ query }}"

Current context:
- Current file: {{ current_path or 'No file currently open' }}
- Search scope: {{ scope_description }}

When done, use the final_answer tool to provide your response.
""",
    "search/system.md": """You answer questions using only the user's notes.
Mention which notes you used and say so when they are not enough.
""",
    "search/answer.md": """Answer this question from my notes: "{{ query }}"

--- NOTES FROM VAULT ---

{{ context }}

--- END OF NOTES ---
""",
}


class PromptLoaderError(Exception):
    """Raised when a prompt cannot be loaded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Example:
        >>> loader = PromptLoader()
        >>> loader.load("agent/user.md", {"query": "hi", "scope_description": "the entire vault"})
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR

        if self.prompts_dir.is_dir():
            self.env: Optional[jinja2.Environment] = jinja2.Environment(
                loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
                autoescape=False,  # Prompts are markdown, not HTML
                auto_reload=True,
                keep_trailing_newline=True,
            )
        else:
            self.env = None
            logger.warning(
                "Prompts directory not found, using inline fallbacks",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render the template at ``path`` with ``context``.

        Raises:
            PromptLoaderError: If the template is unknown or fails to render.
        """
        context = context or {}

        if self.env is not None:
            try:
                return self.env.get_template(path).render(**context)
            except jinja2.TemplateNotFound:
                logger.debug(
                    "Template not found in filesystem, trying inline fallback",
                    extra={"path": path},
                )
            except jinja2.TemplateError as e:
                raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        template_str = INLINE_PROMPTS.get(path)
        if template_str is None:
            raise PromptLoaderError(
                f"Prompt not found: {path}",
                {"available": sorted(INLINE_PROMPTS)},
            )
        try:
            return jinja2.Template(template_str).render(**context)
        except jinja2.TemplateError as e:
            raise PromptLoaderError(f"Failed to render inline template {path}: {e}") from e

    def list_available(self) -> Dict[str, List[str]]:
        """Template paths found on disk and available inline."""
        result: Dict[str, List[str]] = {"filesystem": [], "inline": sorted(INLINE_PROMPTS)}
        if self.prompts_dir.is_dir():
            result["filesystem"] = sorted(
                path.relative_to(self.prompts_dir).as_posix()
                for path in self.prompts_dir.rglob("*.md")
            )
        return result


__all__ = ["DEFAULT_PROMPTS_DIR", "INLINE_PROMPTS", "PromptLoader", "PromptLoaderError"]
