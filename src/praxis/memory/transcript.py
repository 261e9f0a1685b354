"""
Conversation state: the ordered transcript of one session.

Messages are stored in OpenAI chat-completions shape.  Long code blocks are moved into a
placeholder arena and replaced by ``[CODE_n]``; tool results may be parked the same way as
``[TOOL_n]``.  Both arenas only ever grow within a session and are rebuilt from scratch when a
transcript is deserialized.
"""

import json
import logging
import math
import re
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Sequence,
)

from praxis.core.errors import TranscriptError
from praxis.core.schema import (
    Message,
    Role,
    ToolCall,
    WireFunction,
    WireToolCall,
    canonical_json,
)

if TYPE_CHECKING:  # pragma: no cover
    from praxis.agent.compression import ContextCompressionAgent

logger = logging.getLogger(__name__)

COMPRESSION_THRESHOLD = 0.9

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_CODE_PLACEHOLDER_RE = re.compile(r"\[CODE_(\d+)\]")
_TOOL_PLACEHOLDER_RE = re.compile(r"\[TOOL_(\d+)\]")
_CJK_RE = re.compile("[\u4e00-\u9fa5]")


class PlaceholderArena:
    """
    Growable list addressed by 1-based integer handles.

    Handles stay valid for the lifetime of the arena; entries are never removed.
    """

    def __init__(self, prefix: str, items: Iterable[Any] | None = None):
        self.prefix = prefix
        self._items: List[Any] = list(items or [])

    def add(self, item: Any) -> int:
        self._items.append(item)
        return len(self._items)

    def get(self, handle: int) -> Any:
        if 1 <= handle <= len(self._items):
            return self._items[handle - 1]
        return None

    def placeholder(self, handle: int) -> str:
        return f"[{self.prefix}_{handle}]"

    def items(self) -> List[Any]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


def _normalize_arguments(arguments: Any) -> str:
    """Canonical JSON text for tool-call arguments; anything unparsable becomes ``{}``."""
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError:
            return "{}"
    if not isinstance(arguments, dict):
        return "{}"
    return canonical_json(arguments)


def _to_wire_call(call: Any) -> WireToolCall:
    if isinstance(call, WireToolCall):
        return WireToolCall(
            id=call.id,
            function=WireFunction(
                name=call.function.name, arguments=_normalize_arguments(call.function.arguments)
            ),
        )
    if isinstance(call, ToolCall):
        return call.to_wire()
    if isinstance(call, Mapping):
        function = call.get("function") or {}
        return WireToolCall(
            id=str(call["id"]),
            function=WireFunction(
                name=call.get("name") or function.get("name") or "",
                arguments=_normalize_arguments(
                    call.get("arguments", function.get("arguments", "{}"))
                ),
            ),
        )
    raise TranscriptError(f"Unsupported tool call entry: {call!r}")


class Transcript:
    """Append-only message log plus the code and tool-result arenas."""

    def __init__(self) -> None:
        self._messages: List[Message] = []
        self.code_pool = PlaceholderArena("CODE")
        self.tool_result_pool = PlaceholderArena("TOOL")

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    # ------------------------------------------------------------------ #
    # Appending
    # ------------------------------------------------------------------ #
    def add_message(
        self, role: Role | str, content: str, tool_calls: Sequence[Any] | None = None
    ) -> Message:
        """
        Append a user or assistant message.

        Fenced code blocks are parked in :attr:`code_pool` and replaced by ``[CODE_n]``.  Tool calls
        may be :class:`ToolCall`, :class:`WireToolCall` or plain dicts; their arguments are stored
        as canonical JSON.
        """
        role = Role(role)
        if role == Role.TOOL:
            raise TranscriptError("Tool messages must be added with add_tool_result_message()")

        def _park(match: re.Match) -> str:
            return self.code_pool.placeholder(self.code_pool.add(match.group(0)))

        processed = _CODE_BLOCK_RE.sub(_park, content or "")
        wire_calls = [_to_wire_call(call) for call in tool_calls] if tool_calls else None
        message = Message(role=role, content=processed, tool_calls=wire_calls or None)
        self._messages.append(message)
        return message

    def add_tool_result_message(self, tool_call_id: str, result: Any) -> Message:
        """
        Append the tool-role reply to an earlier assistant tool call.

        Raises
        ------
        TranscriptError
            If *tool_call_id* does not match exactly one earlier assistant tool call.
        """
        matches = sum(1 for call_id in self._assistant_call_ids() if call_id == tool_call_id)
        if matches != 1:
            raise TranscriptError(
                f"Tool result '{tool_call_id}' matches {matches} assistant tool call(s); expected 1"
            )
        content = result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)
        message = Message(role=Role.TOOL, content=content, tool_call_id=tool_call_id)
        self._messages.append(message)
        return message

    def add_tool_result(self, result: Any) -> str:
        """Park *result* in the tool-result arena and return its ``[TOOL_n]`` placeholder."""
        return self.tool_result_pool.placeholder(self.tool_result_pool.add(result))

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #
    def _assistant_call_ids(self, messages: Iterable[Message] | None = None) -> List[str]:
        ids: List[str] = []
        for message in self._messages if messages is None else messages:
            if message.role == Role.ASSISTANT and message.tool_calls:
                ids.extend(call.id for call in message.tool_calls)
        return ids

    def tool_call_ids(self) -> List[str]:
        """Ids of every assistant tool call, in transcript order."""
        return self._assistant_call_ids()

    def _reinflate(self, content: str) -> str:
        def _code(match: re.Match) -> str:
            block = self.code_pool.get(int(match.group(1)))
            return block if block else match.group(0)

        def _tool(match: re.Match) -> str:
            result = self.tool_result_pool.get(int(match.group(1)))
            return json.dumps(result, ensure_ascii=False) if result else match.group(0)

        content = _CODE_PLACEHOLDER_RE.sub(_code, content)
        return _TOOL_PLACEHOLDER_RE.sub(_tool, content)

    def _render(
        self, messages: Iterable[Message], include_full_content: bool
    ) -> List[Dict[str, Any]]:
        rendered = []
        for message in messages:
            if message.role != Role.TOOL and include_full_content:
                rendered.append(message.to_wire(self._reinflate(message.content)))
            else:
                rendered.append(message.to_wire())
        return rendered

    def current_turn_start(self) -> int:
        """Index of the latest user message, or ``-1`` if there is none."""
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].role == Role.USER:
                return index
        return -1

    def messages_for_inference(self, include_full_content: bool = False) -> List[Dict[str, Any]]:
        """The whole transcript in wire format, optionally with placeholders expanded."""
        return self._render(self._messages, include_full_content)

    def current_turn_messages(self, include_full_content: bool = False) -> List[Dict[str, Any]]:
        """The suffix starting at the latest user message; empty if no user message exists."""
        start = self.current_turn_start()
        if start < 0:
            return []
        return self._render(self._messages[start:], include_full_content)

    def pending_tool_call_ids(self) -> List[str]:
        """Assistant tool-call ids that have no tool-role reply yet."""
        answered = {m.tool_call_id for m in self._messages if m.role == Role.TOOL}
        return [call_id for call_id in self._assistant_call_ids() if call_id not in answered]

    def validate(self) -> None:
        """
        Check that every tool message answers exactly one earlier assistant tool call.

        Raises
        ------
        TranscriptError
            On the first violation found.
        """
        for index, message in enumerate(self._messages):
            if message.role != Role.TOOL:
                continue
            earlier = self._assistant_call_ids(self._messages[:index])
            count = earlier.count(message.tool_call_id)
            if count != 1:
                raise TranscriptError(
                    f"Message {index + 1}: tool_call_id '{message.tool_call_id}' matches "
                    f"{count} earlier assistant tool call(s)"
                )

    # ------------------------------------------------------------------ #
    # Token budget
    # ------------------------------------------------------------------ #
    def estimate_tokens(self, include_full_content: bool = False) -> int:
        """Rough token count: CJK characters weigh 2, everything else 0.75."""
        total = 0
        for message in self.messages_for_inference(include_full_content):
            content = message.get("content") or ""
            cjk = len(_CJK_RE.findall(content))
            total += math.ceil(cjk * 2 + (len(content) - cjk) * 0.75)
        return total

    def needs_compression(self, max_context_length: int) -> bool:
        return self.estimate_tokens() >= COMPRESSION_THRESHOLD * max_context_length

    async def compress(
        self, compression_agent: "ContextCompressionAgent", max_context_length: int
    ) -> bool:
        """
        Replace every message before the current turn with batch summaries.

        Returns ``True`` when the transcript was rewritten.  The current turn is never touched, so
        tool-call pairs that are still open stay intact.
        """
        if not self.needs_compression(max_context_length):
            return False
        start = self.current_turn_start()
        if start <= 0:
            logger.info("Transcript over budget but nothing precedes the current turn")
            return False

        earlier = self._messages[:start]
        summaries = await compression_agent.compress_messages(earlier)
        self._messages = list(summaries) + self._messages[start:]
        logger.info("Compressed %d message(s) into %d summary message(s)", start, len(summaries))
        return True

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def to_dict(self) -> Dict[str, Any]:
        return {
            "history": [m.model_dump(mode="json", exclude_none=True) for m in self._messages],
            "code_pool": self.code_pool.items(),
            "tool_result_pool": self.tool_result_pool.items(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Transcript":
        transcript = cls()
        data = data or {}
        transcript._messages = [Message.model_validate(m) for m in data.get("history") or []]
        transcript.code_pool = PlaceholderArena("CODE", data.get("code_pool"))
        transcript.tool_result_pool = PlaceholderArena("TOOL", data.get("tool_result_pool"))
        return transcript
