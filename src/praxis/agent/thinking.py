"""Thinking stage: free-form reasoning over the user request, streamed."""

import logging
from typing import (
    AsyncIterator,
    Sequence,
)

from praxis.agent.base import (
    RoleAgent,
    format_tool_catalog,
)
from praxis.core.schema import ToolInfo
from praxis.llm.gateway import ContentDelta

logger = logging.getLogger(__name__)


class ThinkingAgent(RoleAgent):
    name = "ThinkingAgent"

    async def think_stream(
        self, query: str, tools_info: Sequence[ToolInfo] | None = None
    ) -> AsyncIterator[str]:
        """Yield text deltas of the model's reasoning; tool-call deltas are dropped."""
        system = self.system_prompt() + format_tool_catalog(tools_info)
        async for delta in self.gateway.stream_chat(self._messages(system, query)):
            if isinstance(delta, ContentDelta):
                if delta.content:
                    yield delta.content
            else:
                logger.debug("Ignoring tool-call delta during thinking")
