"""Planning stage: turn the request into an ordered TODO list."""

import json
import logging
import re
from typing import (
    Any,
    List,
    Sequence,
)

from praxis.agent.base import (
    RoleAgent,
    format_tool_catalog,
)
from praxis.core.errors import PlanParseError
from praxis.core.schema import (
    ContextView,
    TodoItem,
    ToolInfo,
)

logger = logging.getLogger(__name__)

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def _todo_from(item: Any) -> TodoItem | None:
    if isinstance(item, str) and item.strip():
        return TodoItem(title=item.strip())
    if isinstance(item, dict) and item.get("title"):
        return TodoItem(title=str(item["title"]), description=str(item.get("description") or ""))
    return None


def parse_plan(text: str) -> List[TodoItem]:
    """
    Extract the TODO list from a planning reply.

    The first ``[`` through the last ``]`` is parsed as JSON; entries without a title are dropped.

    Raises
    ------
    PlanParseError
        If the reply holds no JSON array.
    """
    match = _JSON_ARRAY_RE.search(text)
    if not match:
        raise PlanParseError("No JSON array found in the planning reply")
    try:
        items = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise PlanParseError(f"Invalid TODO JSON: {exc}") from exc
    if not isinstance(items, list):
        raise PlanParseError("Planning reply is not a JSON array")
    return [todo for todo in map(_todo_from, items) if todo is not None]


class PlanningAgent(RoleAgent):
    name = "PlanningAgent"

    async def plan(
        self,
        query: str,
        thinking: str,
        selected_contexts: Sequence[ContextView],
        tools_info: Sequence[ToolInfo] | None = None,
    ) -> List[TodoItem]:
        """Return the planned TODOs (all pending); an unparsable reply yields ``[]``."""
        context_summary = "\n".join(
            f"{ctx.name} ({ctx.type.value}): "
            f"{json.dumps(ctx.content, ensure_ascii=False)[:200]}"
            for ctx in selected_contexts
        )
        prompt = (
            f"User request: {query}\n\n"
            f"Thinking result:\n{thinking}\n\n"
            f"Available context:\n{context_summary or 'None'}\n\n"
            "Write a detailed task plan as a JSON array of TODO items."
        )
        system = self.system_prompt() + format_tool_catalog(tools_info)
        reply = await self._complete(self._messages(system, prompt))

        try:
            todos = parse_plan(reply)
        except PlanParseError as exc:
            logger.warning("Falling back to an empty plan: %s (reply=%.300s)", exc, reply)
            return []
        logger.info("Planned %d TODO(s): %s", len(todos), [todo.title for todo in todos])
        return todos
