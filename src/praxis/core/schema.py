"""
Schema definitions for agent <-> orchestrator <-> tool messages.

These data models serve as the contract between the role agents, the orchestration loop, the
host API and persisted sessions.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

import json
import time
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------
class Role(str, Enum):
    """Transcript roles (the system prompt is never stored)."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class WireFunction(BaseModel):
    """Function part of an OpenAI tool call; ``arguments`` is a JSON string."""

    name: str
    arguments: str = "{}"


class WireToolCall(BaseModel):
    """A tool call as stored on an assistant message."""

    id: str
    type: str = "function"
    function: WireFunction


class Message(BaseModel):
    """One transcript entry."""

    role: Role
    content: str = ""
    tool_calls: Optional[List[WireToolCall]] = None
    tool_call_id: Optional[str] = None
    summary_of: Optional[Tuple[int, int]] = Field(
        None, description="1-based inclusive range of the messages a compression summary covers"
    )

    def to_wire(self, content: str | None = None) -> Dict[str, Any]:
        """Return the OpenAI chat-completions representation."""
        if self.role == Role.TOOL:
            return {
                "role": "tool",
                "tool_call_id": self.tool_call_id,
                "content": self.content if content is None else content,
            }
        wire: Dict[str, Any] = {
            "role": self.role.value,
            "content": self.content if content is None else content,
        }
        if self.tool_calls:
            wire["tool_calls"] = [call.model_dump() for call in self.tool_calls]
        return wire


class ToolCall(BaseModel):
    """Pipeline-local tool call, folded into a :class:`Message` once the turn ends."""

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None

    def to_wire(self) -> WireToolCall:
        """Serialize with arguments as canonical JSON."""
        return WireToolCall(
            id=self.id,
            function=WireFunction(name=self.name, arguments=canonical_json(self.arguments)),
        )


def canonical_json(value: Any) -> str:
    """Stable JSON text used for tool-call arguments."""
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


# ---------------------------------------------------------------------------
# Working memory entries
# ---------------------------------------------------------------------------
class TodoStatus(str, Enum):
    """Lifecycle of a planned TODO."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


class TodoItem(BaseModel):
    """One planned unit of work."""

    title: str
    description: str = ""
    status: TodoStatus = TodoStatus.PENDING


class ReflectionType(str, Enum):
    """Outcome of judging a finished TODO."""

    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    REPLAN = "REPLAN"


class Reflection(BaseModel):
    """Reflection verdict plus the raw model text."""

    type: ReflectionType
    reason: str = ""
    todo_title: Optional[str] = None
    timestamp: int = Field(default_factory=_now_ms)


class CodeItem(BaseModel):
    """Entry of the code pool."""

    title: Optional[str] = None
    content: str
    timestamp: int = Field(default_factory=_now_ms)


class Memo(BaseModel):
    """Entry of the memo pool."""

    title: Optional[str] = None
    content: str
    timestamp: int = Field(default_factory=_now_ms)


class Operation(BaseModel):
    """Entry of the operation pool: one tool invocation and its eventual result."""

    id: str
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    timestamp: int = Field(default_factory=_now_ms)


class PoolType(str, Enum):
    """The six working-memory pools, in their fixed enumeration order."""

    THINKING = "thinking"
    TODOS = "todos"
    REFLECTIONS = "reflections"
    CODE_POOL = "code_pool"
    MEMO_POOL = "memo_pool"
    OPERATION_POOL = "operation_pool"


class ContextView(BaseModel):
    """Read-only snapshot of one working-memory pool."""

    name: str
    type: PoolType
    content: Any = None


# ---------------------------------------------------------------------------
# Agent inputs
# ---------------------------------------------------------------------------
class ToolInfo(BaseModel):
    """Catalog entry describing one tool to the model."""

    name: str
    display_name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class TaskProgress(BaseModel):
    """Position of the current TODO within the plan."""

    current: int
    total: int


class ToolOutcome(BaseModel):
    """Result (or error payload) of one tool call inside an execution."""

    id: str
    result: Any = None


class ExecutionResult(BaseModel):
    """What the Interaction Agent produced for one TODO."""

    success: bool = False
    output: str = ""
    tool_calls: List[ToolOutcome] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------------
class EventType(str, Enum):
    """Kinds of events emitted while a turn runs."""

    THINKING = "thinking"
    CONTEXT_SELECTION = "context_selection"
    PLANNING = "planning"
    TODO_START = "todo_start"
    TODO_COMPLETE = "todo_complete"
    TODO_RETRY = "todo_retry"
    REPLAN_REQUIRED = "replan_required"
    REFLECTION = "reflection"
    MEMO_ADDED = "memo_added"
    COMPRESSION = "compression"
    CONTENT = "content"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_UPDATE = "tool_call_update"
    TOOL_CALL_RESULT = "tool_call_result"
    TOOL_CALL_ERROR = "tool_call_error"
    SUMMARY = "summary"
    COMPLETE = "complete"
    ERROR = "error"
    STOPPED = "stopped"


class StageStatus(str, Enum):
    """Progress marker of a stage event."""

    START = "start"
    UPDATE = "update"
    COMPLETE = "complete"


class ToolCallView(BaseModel):
    """Tool call as shown to the caller."""

    id: str
    name: str
    display_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class AgentEvent(BaseModel):
    """One item of the typed event stream: ``{type, status?, ...payload}``."""

    type: EventType
    status: Optional[StageStatus] = None
    content: Optional[str] = None
    contexts: Optional[List[ContextView]] = None
    todos: Optional[List[TodoItem]] = None
    todo: Optional[TodoItem] = None
    reflection: Optional[Reflection] = None
    memo: Optional[Memo] = None
    tool_call: Optional[ToolCallView] = None
    tool_call_id: Optional[str] = None
    result: Any = None
    error: Optional[str] = None
    stage: Optional[str] = None
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Compact JSON-ready dict (unset payload fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)


class CancellationToken:
    """Turn-scoped stop flag shared between the host and the tool callback."""

    def __init__(self, cancelled: bool = False) -> None:
        self.cancelled = cancelled

    def cancel(self) -> None:
        """Request that no further tool call or turn starts."""
        self.cancelled = True
