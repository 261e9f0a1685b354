"""Context compression: distil memos from agent output and summarize long transcripts."""

import json
import logging
import re
from typing import (
    Any,
    List,
    Sequence,
    Tuple,
)

from praxis.agent.base import RoleAgent
from praxis.core.schema import (
    ContextView,
    Memo,
    Message,
    Role,
)

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
NO_MEMO_TOKEN = "无"

_TITLE_RE = re.compile(r"(?:Title|标题)\s*[：:]\s*(.+)", re.IGNORECASE)
_CONTENT_RE = re.compile(r"(?:Content|内容)\s*[：:]\s*(.+)", re.IGNORECASE)


def parse_memo(reply: str) -> Memo | None:
    """``None`` when the reply says there is nothing to remember, else the parsed memo."""
    text = reply.strip()
    if not text or NO_MEMO_TOKEN in text or text.lower() == "none":
        return None
    title = _TITLE_RE.search(text)
    content = _CONTENT_RE.search(text)
    return Memo(
        title=title.group(1).strip() if title else "Memo",
        content=content.group(1).strip() if content else text,
    )


def _role_and_content(message: Any) -> Tuple[str, str]:
    if isinstance(message, Message):
        return message.role.value, message.content
    return str(message.get("role", "")), message.get("content") or ""


class ContextCompressionAgent(RoleAgent):
    name = "ContextCompressionAgent"

    async def extract_memo(self, agent_output: str, all_contexts: Sequence[ContextView]) -> Memo | None:
        contexts = json.dumps(
            [ctx.model_dump(mode="json") for ctx in all_contexts], indent=2, ensure_ascii=False
        )
        prompt = (
            f"Agent output:\n{agent_output}\n\n"
            f"Current context:\n{contexts}\n\n"
            "Extract the information that must be remembered. Answer in the form:\n"
            "Title: <memo title>\n"
            "Content: <memo content>\n\n"
            f'If there is nothing worth remembering, answer "{NO_MEMO_TOKEN}".'
        )
        reply = await self._complete(self._messages(self.system_prompt(), prompt))
        memo = parse_memo(reply)
        if memo is None:
            logger.info("No memo extracted")
        else:
            logger.info("Extracted memo '%s'", memo.title)
        return memo

    async def compress_history(self, messages: Sequence[Any]) -> str:
        """Summarize one batch; each message is cut to 500 characters first."""
        listing = "\n\n".join(
            f"{number}. {role}: {content[:500]}"
            for number, (role, content) in enumerate(map(_role_and_content, messages), start=1)
        )
        prompt = (
            "Compress the following conversation history and keep the key information:\n\n"
            f"{listing}\n\n"
            "Write the compressed summary, keeping every important detail."
        )
        result = await self.gateway.call_chat(self._messages(self.system_prompt(), prompt))
        return result.content

    async def compress_messages(self, messages: Sequence[Any]) -> List[Message]:
        """
        Compress *messages* in independent batches of :data:`BATCH_SIZE`.

        Returns one assistant message per batch, tagged with the 1-based inclusive range of the
        input it covers.
        """
        summaries: List[Message] = []
        total = len(messages)
        for offset in range(0, total, BATCH_SIZE):
            start, end = offset + 1, min(offset + BATCH_SIZE, total)
            logger.debug("Compressing messages %d-%d of %d", start, end, total)
            summary = await self.compress_history(messages[offset : offset + BATCH_SIZE])
            summaries.append(
                Message(
                    role=Role.ASSISTANT,
                    content=f"[Compressed summary {start}-{end}]: {summary}",
                    summary_of=(start, end),
                )
            )
        return summaries
