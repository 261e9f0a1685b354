"""
Prompt templates for the role agents.

Each agent's system prompt lives in ``templates/<AgentName>.txt``.  Templates may contain
``{{KEY}}`` placeholders that are filled from the *variables* mapping.  A missing template yields an
empty prompt fragment rather than an error.
"""

import logging
from pathlib import Path
from typing import (
    Dict,
    List,
    Mapping,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


class PromptLoader:
    """Key-value prompt source with ``{{KEY}}`` substitution; raw templates are cached per agent."""

    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory) if directory else TEMPLATES_DIR
        self._cache: Dict[str, str] = {}

    def load(self, agent_name: str, variables: Mapping[str, str | None] | None = None) -> str:
        """Return the system prompt for *agent_name* with *variables* substituted."""
        prompt = self._template(agent_name)
        for key, value in (variables or {}).items():
            prompt = prompt.replace(f"{{{{{key}}}}}", value or "")
        return prompt

    def _template(self, agent_name: str) -> str:
        if agent_name in self._cache:
            return self._cache[agent_name]

        path = self.directory / f"{agent_name}.txt"
        try:
            template = path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            logger.warning("Prompt file not found: %s", path)
            return ""
        except OSError as exc:
            logger.error("Failed to load prompt for %s: %s", agent_name, exc)
            return ""

        self._cache[agent_name] = template
        return template

    def clear_cache(self) -> None:
        """Forget every cached template."""
        self._cache.clear()

    def list_available(self) -> List[str]:
        """Names of the agents that have a template."""
        try:
            return sorted(path.stem for path in self.directory.glob("*.txt"))
        except OSError as exc:
            logger.error("Failed to list prompts: %s", exc)
            return []


default_prompts = PromptLoader()
