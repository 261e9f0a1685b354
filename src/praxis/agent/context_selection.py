"""Context-selection stage: one yes/no relevance call per working-memory pool."""

import json
import logging
import re
from typing import (
    List,
    Sequence,
)

from praxis.agent.base import RoleAgent
from praxis.core.schema import ContextView

logger = logging.getLogger(__name__)

_FIRST_NUMBER_RE = re.compile(r"\d+")


class ContextSelectionAgent(RoleAgent):
    """
    Judges each context entry independently.

    An entry is selected iff the first number in the model's reply is ``1``.  Entries are judged
    in the order given, one call each, and the result is always a subset of the input.
    """

    name = "ContextSelectionAgent"

    async def select_context(
        self, query: str, thinking: str, target_agent: str, context: ContextView
    ) -> bool:
        prompt = (
            f"User request: {query}\n\n"
            f"Thinking result: {thinking}\n\n"
            f"Target agent: {target_agent}\n\n"
            "Context entry:\n"
            f"Name: {context.name}\n"
            f"Type: {context.type.value}\n"
            f"Content: {json.dumps(context.content, indent=2, ensure_ascii=False)}\n\n"
            "Should this context be used? Answer with 1 or 0 only."
        )
        reply = await self._complete(self._messages(self.system_prompt(), prompt))
        match = _FIRST_NUMBER_RE.search(reply)
        selected = bool(match) and int(match.group(0)) == 1
        logger.info(
            "Context '%s' for %s: %s (reply=%r)",
            context.name,
            target_agent,
            "selected" if selected else "skipped",
            reply[:50],
        )
        return selected

    async def select_contexts(
        self,
        query: str,
        thinking: str,
        target_agent: str,
        contexts: Sequence[ContextView],
    ) -> List[ContextView]:
        selected: List[ContextView] = []
        for context in contexts:
            if await self.select_context(query, thinking, target_agent, context):
                selected.append(context)
        logger.info("Selected %d of %d context(s)", len(selected), len(contexts))
        return selected
