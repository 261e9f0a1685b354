"""
Shared shape of the role agents.

Every agent is a client of one :class:`~praxis.llm.gateway.LLMGateway` parameterized by a system
prompt.  The prompt is the agent's template, followed by a working-directory notice, followed by
whatever dynamic sections the agent adds (tool catalog, context dump, ...).
"""

import logging
from typing import (
    Any,
    ClassVar,
    Dict,
    List,
    Sequence,
)

from praxis.core.schema import ToolInfo
from praxis.llm.gateway import LLMGateway
from praxis.prompts import (
    PromptLoader,
    default_prompts,
)

logger = logging.getLogger(__name__)


def format_tool_catalog(tools_info: Sequence[ToolInfo] | None) -> str:
    """Render the enabled tools as a numbered list with their parameters."""
    if not tools_info:
        return "\n\nAvailable tools: none.\n"

    lines = ["", "", "Available tools:"]
    for number, tool in enumerate(tools_info, start=1):
        lines.append(f"{number}. {tool.display_name} ({tool.name})")
        lines.append(f"   Description: {tool.description}")
        properties: Dict[str, Any] = tool.input_schema.get("properties") or {}
        if properties:
            required = set(tool.input_schema.get("required") or [])
            lines.append("   Parameters:")
            for param, spec in properties.items():
                flag = "[required]" if param in required else "[optional]"
                line = f"     - {param} ({spec.get('type', 'unknown')}) {flag}"
                if spec.get("description"):
                    line += f": {spec['description']}"
                lines.append(line)
        lines.append("")
    return "\n".join(lines) + "\n"


class RoleAgent:
    """
    Base class for the pipeline's stage processors.

    Parameters
    ----------
    gateway:
        Chat-completions client, possibly configured with a per-agent model/key/endpoint.
    prompts:
        Template source; defaults to the bundled templates.
    work_directory:
        Announced to the model in every system prompt.
    """

    name: ClassVar[str] = "Agent"

    def __init__(
        self,
        gateway: LLMGateway,
        prompts: PromptLoader | None = None,
        work_directory: str | None = None,
    ):
        self.gateway = gateway
        self.prompts = prompts or default_prompts
        self.work_directory = work_directory

    def work_directory_notice(self) -> str:
        if self.work_directory:
            return (
                f"\n\nIMPORTANT: the current working directory is: {self.work_directory}\n"
                "All file operations and path references are relative to this directory."
            )
        return "\n\nIMPORTANT: no working directory is set."

    def system_prompt(self, **variables: str) -> str:
        """Template for this agent with *variables* filled in, plus the working-directory notice."""
        return self.prompts.load(self.name, variables) + self.work_directory_notice()

    @staticmethod
    def _messages(system: str, user: str) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def _complete(self, messages: List[Dict[str, Any]]) -> str:
        """Run one non-streaming completion and return the stripped reply text."""
        result = await self.gateway.call_chat(messages)
        content = result.content.strip()
        logger.debug("%s reply (%d chars): %.200s", self.name, len(content), content)
        return content
