"""Reflection stage: judge a finished TODO as SUCCESS, RETRY or REPLAN."""

import json
import logging
from typing import Sequence

from praxis.agent.base import (
    RoleAgent,
    format_tool_catalog,
)
from praxis.core.schema import (
    ExecutionResult,
    Memo,
    Reflection,
    ReflectionType,
    TodoItem,
    ToolInfo,
)

logger = logging.getLogger(__name__)


def classify_reflection(text: str) -> ReflectionType:
    """Substring classifier: RETRY wins over REPLAN; anything else is SUCCESS."""
    upper = text.upper()
    if "RETRY" in upper:
        return ReflectionType.RETRY
    if "REPLAN" in upper:
        return ReflectionType.REPLAN
    return ReflectionType.SUCCESS


class ReflectionAgent(RoleAgent):
    name = "ReflectionAgent"

    async def reflect(
        self,
        todo: TodoItem,
        execution_result: ExecutionResult,
        query: str,
        all_todos: Sequence[TodoItem],
        memo_pool: Sequence[Memo],
        tools_info: Sequence[ToolInfo] | None = None,
    ) -> Reflection:
        """Return the verdict; ``reason`` keeps the model's full reply."""
        memo_summary = "\n".join(f"{memo.title}: {memo.content[:100]}" for memo in memo_pool)
        prompt = (
            f"User request: {query}\n\n"
            f"Executed TODO:\n{todo.model_dump_json(indent=2)}\n\n"
            f"Execution result:\n{execution_result.model_dump_json(indent=2)}\n\n"
            "All TODOs:\n"
            f"{json.dumps([t.model_dump(mode='json') for t in all_todos], indent=2, ensure_ascii=False)}"
            f"\n\nMemo pool:\n{memo_summary or 'None'}\n\n"
            "Judge the result and answer SUCCESS, RETRY or REPLAN. Explain any adjustment."
        )
        system = self.system_prompt() + format_tool_catalog(tools_info)
        result = await self.gateway.call_chat(self._messages(system, prompt))
        reason = result.content
        verdict = classify_reflection(reason.strip())
        logger.info("Reflection on '%s': %s", todo.title, verdict.value)
        return Reflection(type=verdict, reason=reason, todo_title=todo.title)
