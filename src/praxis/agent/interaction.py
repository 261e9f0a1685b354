"""
Interaction stage: converse with the model and dispatch its tool calls.

The model's reply is streamed.  Tool calls arrive as fragments keyed by a provider-assigned index;
names and argument text are concatenated per index in arrival order.  A call is announced with
``tool_call_start`` as soon as its name is known and its arguments parse to a non-empty object.
Calls that never got that far are announced once the stream ends, and an announced call whose
argument text grew afterwards gets one ``tool_call_update``.  Only then are the calls executed,
one at a time, in the order their index was first seen.  An id repeated by a second call of
the same stream is suffixed (``_2``, ``_3``, ...), so every event names exactly one call.
"""

import json
import logging
import time
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Sequence,
    Set,
)

from praxis.agent.base import RoleAgent
from praxis.core.schema import (
    AgentEvent,
    ContextView,
    EventType,
    TaskProgress,
    ToolCallView,
)
from praxis.llm.gateway import (
    ContentDelta,
    ToolCallDelta,
)
from praxis.tools import Tool

logger = logging.getLogger(__name__)

ToolCallback = Callable[[str, Dict[str, Any]], Awaitable[Any]]

UNKNOWN_TOOL = "unknown_tool"


class _PendingCall:
    """Tool call being assembled from stream fragments."""

    def __init__(self, index: int, call_id: str | None):
        self.index = index
        self.id = call_id or f"call_{index}_{int(time.time() * 1000)}"
        self.name = ""
        self.raw_arguments = ""
        self.announced_arguments: str | None = None
        self.arguments: Dict[str, Any] = {}
        self.parse_error: str | None = None

    @property
    def announced(self) -> bool:
        return self.announced_arguments is not None

    def finalize(self) -> None:
        """Best-effort parse of the complete argument text."""
        text = self.raw_arguments.strip() or "{}"
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            self.parse_error = str(exc)
            self.arguments = {"_raw_arguments": self.raw_arguments, "_parse_error": str(exc)}
            return
        if not isinstance(parsed, dict):
            self.parse_error = f"arguments must be a JSON object, got {type(parsed).__name__}"
            self.arguments = {"_raw_arguments": self.raw_arguments, "_parse_error": self.parse_error}
            return
        self.arguments = parsed


def _unique_id(call_id: str, taken: Set[str]) -> str:
    """*call_id*, suffixed with ``_2``, ``_3``, ... while another call in the stream holds it."""
    candidate, suffix = call_id, 1
    while candidate in taken:
        suffix += 1
        candidate = f"{call_id}_{suffix}"
    return candidate


def _complete_object(text: str) -> Dict[str, Any] | None:
    """Parsed arguments if *text* is already a non-empty JSON object, else ``None``."""
    if not text.strip():
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) and parsed else None


def with_progress(query: str, progress: TaskProgress | None) -> str:
    """Prefix *query* with a plain-text plan-position note."""
    if progress is None:
        return query
    return (
        f"[Task progress] Executing task {progress.current} of {progress.total}\n\n{query}"
    )


def format_contexts(contexts: Sequence[ContextView]) -> str:
    """Context dump for the system prompt; each entry is cut to 500 characters of JSON."""
    rendered = "\n\n".join(
        f"{ctx.name}: {json.dumps(ctx.content, ensure_ascii=False)[:500]}" for ctx in contexts
    )
    return rendered or "None"


class InteractionAgent(RoleAgent):
    name = "InteractionAgent"

    def _view(self, call: _PendingCall, tools: Sequence[Tool]) -> ToolCallView:
        name = call.name or UNKNOWN_TOOL
        display_name = next((tool.display_name for tool in tools if tool.name == name), name)
        return ToolCallView(
            id=call.id, name=name, display_name=display_name, arguments=dict(call.arguments)
        )

    async def interact(
        self,
        query: str,
        selected_contexts: Sequence[ContextView],
        tools: Sequence[Tool],
        on_tool_call: ToolCallback | None,
        history_messages: Sequence[Dict[str, Any]] | None = None,
        task_progress: TaskProgress | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Stream one interaction as ``content`` and ``tool_call_*`` events.

        Parameters
        ----------
        query:
            The task text; *task_progress*, if given, is prepended to it.
        selected_contexts:
            Working-memory snapshots rendered into the system prompt.
        tools:
            Tools offered to the model.
        on_tool_call:
            ``await on_tool_call(name, args)``; its exceptions become ``tool_call_error`` events.
        history_messages:
            Current-turn transcript in wire format, placed between system prompt and *query*.

        Raises
        ------
        ApiCallError, ConfigError, InputError
            Propagated from the gateway; tool failures never raise.
        """
        system = self.system_prompt(CONTEXTS=format_contexts(selected_contexts))
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": system},
            *(history_messages or []),
            {"role": "user", "content": with_progress(query, task_progress)},
        ]
        definitions = [tool.definition() for tool in tools]
        if not definitions:
            logger.warning("No tools available for this interaction")

        pending: Dict[int, _PendingCall] = {}
        async for delta in self.gateway.stream_chat(messages, tools=definitions or None):
            if isinstance(delta, ContentDelta):
                yield AgentEvent(type=EventType.CONTENT, content=delta.content)
                continue
            if not isinstance(delta, ToolCallDelta):
                continue
            for fragment in delta.tool_calls:
                call = pending.get(fragment.index)
                if call is None:
                    call = _PendingCall(fragment.index, fragment.id)
                    call.id = _unique_id(call.id, {other.id for other in pending.values()})
                    pending[fragment.index] = call
                if fragment.function.name:
                    call.name += fragment.function.name
                if fragment.function.arguments:
                    call.raw_arguments += fragment.function.arguments

                if call.name and not call.announced:
                    arguments = _complete_object(call.raw_arguments)
                    if arguments is not None:
                        call.arguments = arguments
                        call.announced_arguments = call.raw_arguments
                        yield AgentEvent(
                            type=EventType.TOOL_CALL_START, tool_call=self._view(call, tools)
                        )

        # Stream finished: announce stragglers, correct early announcements.
        for call in pending.values():
            if not call.announced:
                call.finalize()
                call.announced_arguments = call.raw_arguments
                yield AgentEvent(type=EventType.TOOL_CALL_START, tool_call=self._view(call, tools))
            elif call.raw_arguments != call.announced_arguments:
                call.finalize()
                yield AgentEvent(type=EventType.TOOL_CALL_UPDATE, tool_call=self._view(call, tools))
            else:
                call.finalize()

        for call in pending.values():
            async for event in self._execute(call, on_tool_call):
                yield event

    async def _execute(
        self, call: _PendingCall, on_tool_call: ToolCallback | None
    ) -> AsyncIterator[AgentEvent]:
        if call.parse_error is not None:
            logger.warning("Tool '%s' has unparsable arguments: %s", call.name, call.parse_error)
            yield self._error(call, f"Invalid tool arguments: {call.parse_error}")
            return
        if not call.name:
            yield self._error(call, "Tool call is missing a function name")
            return
        if on_tool_call is None:
            yield self._error(call, "No tool handler is available")
            return

        try:
            result = await on_tool_call(call.name, dict(call.arguments))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool '%s' failed: %s", call.name, exc)
            yield self._error(call, str(exc))
            return
        yield AgentEvent(type=EventType.TOOL_CALL_RESULT, tool_call_id=call.id, result=result)

    @staticmethod
    def _error(call: _PendingCall, message: str) -> AgentEvent:
        return AgentEvent(type=EventType.TOOL_CALL_ERROR, tool_call_id=call.id, error=message)
