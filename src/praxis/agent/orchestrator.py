"""
Main orchestration loop for Praxis.

One user turn runs a fixed pipeline::

    thinking -> context selection -> planning -> (per TODO: interaction -> reflection) -> summary

and is reported as a stream of :class:`~praxis.core.schema.AgentEvent`.  The orchestrator is the
only writer of the session's :class:`Transcript` and :class:`WorkingMemory`; agents only ever see
snapshots.  A failure in any stage ends the turn with a single ``error`` event; whatever was
appended to the transcript before the failure stays there.
"""

import json
import logging
import re
from pathlib import Path
from typing import (
    Any,
    AsyncIterator,
    List,
    Sequence,
)

from praxis.agent.compression import ContextCompressionAgent
from praxis.agent.context_selection import ContextSelectionAgent
from praxis.agent.interaction import (
    InteractionAgent,
    ToolCallback,
)
from praxis.agent.planning import PlanningAgent
from praxis.agent.reflection import ReflectionAgent
from praxis.agent.thinking import ThinkingAgent
from praxis.config import Settings
from praxis.core.errors import StageError
from praxis.core.schema import (
    AgentEvent,
    CancellationToken,
    ContextView,
    EventType,
    ExecutionResult,
    Message,
    Operation,
    ReflectionType,
    Role,
    StageStatus,
    TaskProgress,
    TodoItem,
    TodoStatus,
    ToolCall,
    ToolInfo,
    ToolOutcome,
)
from praxis.llm.gateway import LLMGateway
from praxis.memory.transcript import Transcript
from praxis.memory.working_memory import WorkingMemory
from praxis.prompts import PromptLoader
from praxis.tools import Tool

logger = logging.getLogger(__name__)

INTERACTION_TARGET = "InteractionAgent"
MISSING_RESULT = {"error": "Tool call did not complete"}

_BLANK_RUN_RE = re.compile(r"\n{3,}")
_BRACKET_LINE_RE = re.compile(r"^[\s]*[{\[][\s]*[}\]][\s]*$", re.MULTILINE)


def clean_content_from_tool_results(content: str, tool_calls: Sequence[ToolCall]) -> str:
    """
    Remove echoed tool results from assistant text before it is stored.

    Both the compact and the indented JSON of each result are deleted.  If a result carries a long
    ``content`` string, everything from its first 50 characters onward is cut as well.
    """
    if not tool_calls:
        return content

    cleaned = content
    for call in tool_calls:
        if not call.result:
            continue
        compact = json.dumps(call.result, ensure_ascii=False, separators=(",", ":"))
        pretty = json.dumps(call.result, ensure_ascii=False, indent=2)
        cleaned = cleaned.replace(compact, "").replace(pretty, "")

        inner = call.result.get("content") if isinstance(call.result, dict) else None
        if isinstance(inner, str) and len(inner) > 100:
            cleaned = re.sub(re.escape(inner[:50]) + ".*", "", cleaned, count=1, flags=re.DOTALL)

    cleaned = _BLANK_RUN_RE.sub("\n\n", cleaned).strip()
    return _BRACKET_LINE_RE.sub("", cleaned)


def todo_query(todo: TodoItem, query: str) -> str:
    return f"TODO: {todo.title}\nDescription: {todo.description}\nOriginal request: {query}"


def summary_query(query: str, has_todos: bool) -> str:
    if has_todos:
        return (
            f'All TODO tasks are finished. Based on the original request "{query}" and the '
            "results of every task, give the final summary and answer."
        )
    return f'There are no TODO tasks. Answer the original request "{query}" directly.'


class _Interaction:
    """What one Interaction Agent run produced: streamed text plus its tool calls."""

    def __init__(self) -> None:
        self.output = ""
        self.calls: List[ToolCall] = []

    def find(self, call_id: str | None) -> ToolCall | None:
        return next((call for call in self.calls if call.id == call_id), None)

    def resolve(self, call_id: str | None, result: Any) -> None:
        call = self.find(call_id)
        if call is None:
            logger.warning("Result for unknown tool call '%s'", call_id)
            return
        call.result = result

    def execution_result(self) -> ExecutionResult:
        return ExecutionResult(
            success=True,
            output=self.output,
            tool_calls=[
                ToolOutcome(id=call.id, result=call.result)
                for call in self.calls
                if call.result is not None
            ],
        )


class Orchestrator:
    """
    Drives the six role agents through one turn.

    Parameters
    ----------
    tools:
        Enabled tools; offered to the Interaction Agent and described to the others.
    max_context_length:
        Token budget; earlier turns are compressed once the transcript reaches 90% of it.
    """

    def __init__(
        self,
        tools: Sequence[Tool],
        thinking: ThinkingAgent,
        context_selection: ContextSelectionAgent,
        planning: PlanningAgent,
        interaction: InteractionAgent,
        reflection: ReflectionAgent,
        compression: ContextCompressionAgent,
        max_context_length: int = 16384,
    ):
        self.tools = list(tools)
        self.thinking = thinking
        self.context_selection = context_selection
        self.planning = planning
        self.interaction = interaction
        self.reflection = reflection
        self.compression = compression
        self.max_context_length = max_context_length

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        work_directory: str | Path | None,
        tools: Sequence[Tool],
        prompts: PromptLoader | None = None,
    ) -> "Orchestrator":
        """Build every agent with its own gateway, honouring per-agent overrides."""
        if prompts is None and settings.PROMPTS_DIR:
            prompts = PromptLoader(settings.PROMPTS_DIR)
        work_dir = str(work_directory) if work_directory else None

        def _agent(agent_cls, key: str):
            return agent_cls(LLMGateway(settings.llm_config_for(key)), prompts, work_dir)

        return cls(
            tools=tools,
            thinking=_agent(ThinkingAgent, "thinking"),
            context_selection=_agent(ContextSelectionAgent, "context_selection"),
            planning=_agent(PlanningAgent, "planning"),
            interaction=_agent(InteractionAgent, "interaction"),
            reflection=_agent(ReflectionAgent, "reflection"),
            compression=_agent(ContextCompressionAgent, "compression"),
            max_context_length=settings.MAX_CONTEXT_LENGTH,
        )

    @property
    def tools_info(self) -> List[ToolInfo]:
        return [tool.info() for tool in self.tools]

    async def compress_history(self, messages: Sequence[Any]) -> List[Message]:
        return await self.compression.compress_messages(messages)

    # ------------------------------------------------------------------ #
    # Turn
    # ------------------------------------------------------------------ #
    async def process_message(
        self,
        query: str,
        memory: WorkingMemory,
        transcript: Transcript,
        on_tool_call: ToolCallback | None,
        cancellation: CancellationToken | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """
        Run one user turn and yield its events.

        The turn always ends with exactly one of ``complete``, ``error`` or ``stopped``.
        """
        if _stopped(cancellation):
            logger.info("Turn cancelled before it started")
            yield AgentEvent(type=EventType.STOPPED)
            return

        logger.info("Processing message (%d chars)", len(query))
        try:
            async for event in self._run_turn(query, memory, transcript, on_tool_call, cancellation):
                yield event
        except StageError as exc:
            logger.error("Turn aborted: %s", exc, exc_info=exc.cause)
            yield AgentEvent(type=EventType.ERROR, error=str(exc), stage=exc.stage)

    async def _run_turn(
        self,
        query: str,
        memory: WorkingMemory,
        transcript: Transcript,
        on_tool_call: ToolCallback | None,
        cancellation: CancellationToken | None,
    ) -> AsyncIterator[AgentEvent]:
        transcript.add_message(Role.USER, query)
        async for event in self._maybe_compress(transcript):
            yield event

        tools_info = self.tools_info

        # 1. Thinking
        yield AgentEvent(type=EventType.THINKING, status=StageStatus.START)
        thinking = ""
        try:
            async for delta in self.thinking.think_stream(query, tools_info):
                thinking += delta
                yield AgentEvent(type=EventType.THINKING, status=StageStatus.UPDATE, content=delta)
        except Exception as exc:  # noqa: BLE001
            raise StageError("thinking", exc) from exc
        memory.set_thinking(thinking)
        yield AgentEvent(type=EventType.THINKING, status=StageStatus.COMPLETE)

        # 2. Context selection
        yield AgentEvent(type=EventType.CONTEXT_SELECTION, status=StageStatus.START)
        try:
            selected: List[ContextView] = await self.context_selection.select_contexts(
                query, thinking, INTERACTION_TARGET, memory.get_all_contexts()
            )
        except Exception as exc:  # noqa: BLE001
            raise StageError("context_selection", exc) from exc
        yield AgentEvent(
            type=EventType.CONTEXT_SELECTION, status=StageStatus.COMPLETE, contexts=selected
        )

        # 3. Planning
        yield AgentEvent(type=EventType.PLANNING, status=StageStatus.START)
        try:
            todos = await self.planning.plan(query, thinking, selected, tools_info)
        except Exception as exc:  # noqa: BLE001
            raise StageError("planning", exc) from exc
        memory.set_todos(todos)
        yield AgentEvent(type=EventType.PLANNING, status=StageStatus.COMPLETE, todos=_copy(todos))

        # 4. Execution + reflection, one TODO at a time
        for position, todo in enumerate(todos, start=1):
            if _stopped(cancellation):
                yield AgentEvent(type=EventType.STOPPED)
                return

            todo.status = TodoStatus.RUNNING
            memory.set_todos(todos)
            yield AgentEvent(type=EventType.TODO_START, todo=todo.model_copy())

            run = _Interaction()
            try:
                async for event in self._interact(
                    todo_query(todo, query),
                    selected,
                    on_tool_call,
                    transcript,
                    memory,
                    run,
                    TaskProgress(current=position, total=len(todos)),
                ):
                    yield event
            except Exception as exc:  # noqa: BLE001
                self._commit(transcript, run)
                raise StageError("execution", exc) from exc
            self._commit(transcript, run)

            todo.status = TodoStatus.COMPLETED
            memory.set_todos(todos)
            yield AgentEvent(type=EventType.TODO_COMPLETE, todo=todo.model_copy())

            yield AgentEvent(
                type=EventType.REFLECTION, status=StageStatus.START, todo=todo.model_copy()
            )
            try:
                reflection = await self.reflection.reflect(
                    todo,
                    run.execution_result(),
                    query,
                    todos,
                    memory.get_memo_pool(),
                    tools_info,
                )
            except Exception as exc:  # noqa: BLE001
                raise StageError("reflection", exc) from exc
            reflection = memory.add_reflection(reflection)
            yield AgentEvent(
                type=EventType.REFLECTION, status=StageStatus.COMPLETE, reflection=reflection
            )

            if reflection.type == ReflectionType.SUCCESS:
                async for event in self._extract_memo(run.output, memory):
                    yield event
            elif reflection.type == ReflectionType.RETRY:
                # Re-execution is not attempted; the loop moves on to the next TODO.
                yield AgentEvent(
                    type=EventType.TODO_RETRY, todo=todo.model_copy(), reason=reflection.reason
                )
            else:
                # No second planning pass; the remaining TODOs are abandoned.
                yield AgentEvent(type=EventType.REPLAN_REQUIRED, reason=reflection.reason)
                break

        # 5. Final summary, even when nothing was planned
        if _stopped(cancellation):
            yield AgentEvent(type=EventType.STOPPED)
            return

        yield AgentEvent(type=EventType.SUMMARY, status=StageStatus.START)
        run = _Interaction()
        try:
            async for event in self._interact(
                summary_query(query, bool(todos)), selected, on_tool_call, transcript, memory, run
            ):
                yield event
        except Exception as exc:  # noqa: BLE001
            self._commit(transcript, run)
            raise StageError("summary", exc) from exc
        self._commit(transcript, run)
        yield AgentEvent(type=EventType.SUMMARY, status=StageStatus.COMPLETE)

        logger.info("Turn complete (%d TODO(s))", len(todos))
        yield AgentEvent(type=EventType.COMPLETE)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    async def _maybe_compress(self, transcript: Transcript) -> AsyncIterator[AgentEvent]:
        """Compress earlier turns when over budget; failures are logged, never fatal."""
        if not transcript.needs_compression(self.max_context_length):
            return
        before = len(transcript)
        try:
            compressed = await transcript.compress(self.compression, self.max_context_length)
        except Exception as exc:  # noqa: BLE001
            logger.warning("History compression failed: %s", exc)
            return
        if compressed:
            yield AgentEvent(
                type=EventType.COMPRESSION,
                status=StageStatus.COMPLETE,
                content=f"Compressed {before} message(s) into {len(transcript)}",
            )

    async def _interact(
        self,
        query: str,
        selected: Sequence[ContextView],
        on_tool_call: ToolCallback | None,
        transcript: Transcript,
        memory: WorkingMemory,
        run: _Interaction,
        progress: TaskProgress | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Forward Interaction Agent events while recording tool calls and operations."""
        async for event in self.interaction.interact(
            query,
            selected,
            self.tools,
            on_tool_call,
            transcript.current_turn_messages(),
            progress,
        ):
            if event.type == EventType.CONTENT:
                run.output += event.content or ""
                yield event
            elif event.type == EventType.TOOL_CALL_START:
                view = event.tool_call
                run.calls.append(ToolCall(id=view.id, name=view.name, arguments=view.arguments))
                memory.add_operation(Operation(id=view.id, tool=view.name, args=view.arguments))
                yield event
            elif event.type == EventType.TOOL_CALL_UPDATE:
                call = run.find(event.tool_call.id)
                if call is not None:
                    call.arguments = event.tool_call.arguments
                memory.update_operation_args(event.tool_call.id, event.tool_call.arguments)
                yield event
            elif event.type == EventType.TOOL_CALL_RESULT:
                run.resolve(event.tool_call_id, event.result)
                memory.update_operation_result(event.tool_call_id, event.result)
                yield event
            elif event.type == EventType.TOOL_CALL_ERROR:
                error_result = {"error": event.error}
                run.resolve(event.tool_call_id, error_result)
                memory.update_operation_result(event.tool_call_id, error_result)
                yield event

    def _commit(self, transcript: Transcript, run: _Interaction) -> None:
        """Append the assistant message and one tool message per call."""
        if not run.output and not run.calls:
            return

        taken = set(transcript.tool_call_ids())
        calls: List[ToolCall] = []
        for call in run.calls:
            call_id, suffix = call.id, 1
            while call_id in taken:
                suffix += 1
                call_id = f"{call.id}_{suffix}"
            taken.add(call_id)
            calls.append(call.model_copy(update={"id": call_id}))

        content = clean_content_from_tool_results(run.output, calls)
        transcript.add_message(Role.ASSISTANT, content, calls or None)
        for call in calls:
            transcript.add_tool_result_message(
                call.id, call.result if call.result is not None else MISSING_RESULT
            )

    async def _extract_memo(self, output: str, memory: WorkingMemory) -> AsyncIterator[AgentEvent]:
        """Memo extraction after a successful TODO; failures are logged and ignored."""
        try:
            memo = await self.compression.extract_memo(output, memory.get_all_contexts())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Memo extraction failed: %s", exc)
            return
        if memo is not None:
            memo = memory.add_memo(memo)
            yield AgentEvent(type=EventType.MEMO_ADDED, memo=memo)


def _stopped(cancellation: CancellationToken | None) -> bool:
    return cancellation is not None and cancellation.cancelled


def _copy(todos: Sequence[TodoItem]) -> List[TodoItem]:
    return [todo.model_copy() for todo in todos]
