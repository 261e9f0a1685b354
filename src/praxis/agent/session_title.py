"""Short session titles generated from the latest exchange."""

import logging
import re
from typing import (
    Any,
    Dict,
    Sequence,
)

from praxis.agent.base import RoleAgent
from praxis.core.errors import PraxisError

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New session"
MAX_TITLE_LENGTH = 30

_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


class SessionTitleAgent(RoleAgent):
    name = "SessionTitleAgent"

    def system_prompt(self, **variables: str) -> str:
        return self.prompts.load(self.name, variables)

    async def generate(
        self, messages: Sequence[Dict[str, Any]], old_title: str | None = None
    ) -> str:
        """Title for the session; keeps *old_title* (or the default) if the model is unavailable."""
        fallback = old_title or DEFAULT_TITLE
        exchange = "\n".join(
            f"{'User' if m.get('role') == 'user' else 'AI'}: {(m.get('content') or '')[:500]}"
            for m in messages
        )
        if old_title:
            prompt = (
                f"Previous title: {old_title}\n\nConversation:\n{exchange}\n\n"
                "Write a new title that covers the previous title and this conversation."
            )
        else:
            prompt = f"Conversation:\n{exchange}\n\nWrite a concise title."

        try:
            title = await self._complete(self._messages(self.system_prompt(), prompt))
        except PraxisError as exc:
            logger.warning("Failed to generate a session title: %s", exc)
            return fallback
        title = _QUOTES_RE.sub("", title)[:MAX_TITLE_LENGTH].strip()
        return title or fallback
