"""
Working memory: the six context pools the role agents read from.

``thinking`` and ``todos`` are replaced wholesale; every other pool is append-only.  Only the
orchestrator writes here; agents receive :class:`ContextView` snapshots.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Sequence,
)

from praxis.core.schema import (
    CodeItem,
    ContextView,
    Memo,
    Operation,
    PoolType,
    Reflection,
    TodoItem,
    _now_ms,
)

logger = logging.getLogger(__name__)

POOL_NAMES: Dict[PoolType, str] = {
    PoolType.THINKING: "Thinking",
    PoolType.TODOS: "TODO list",
    PoolType.REFLECTIONS: "Reflection history",
    PoolType.CODE_POOL: "Code pool",
    PoolType.MEMO_POOL: "Memo pool",
    PoolType.OPERATION_POOL: "Operation pool",
}


class WorkingMemory:
    """Per-session context store."""

    def __init__(self) -> None:
        self.thinking: str = ""
        self.todos: List[TodoItem] = []
        self.reflections: List[Reflection] = []
        self.code_pool: List[CodeItem] = []
        self.memo_pool: List[Memo] = []
        self.operation_pool: List[Operation] = []

    # ------------------------------------------------------------------ #
    # Writers
    # ------------------------------------------------------------------ #
    def set_thinking(self, content: str) -> None:
        self.thinking = content

    def set_todos(self, todos: Sequence[TodoItem]) -> None:
        """Replace the TODO list with a snapshot of *todos*."""
        self.todos = [todo.model_copy() for todo in todos]

    def add_reflection(self, reflection: Reflection) -> Reflection:
        entry = reflection.model_copy(update={"timestamp": _now_ms()})
        self.reflections.append(entry)
        return entry

    def add_code(self, item: CodeItem) -> CodeItem:
        entry = item.model_copy(update={"timestamp": _now_ms()})
        self.code_pool.append(entry)
        return entry

    def add_memo(self, memo: Memo) -> Memo:
        entry = memo.model_copy(update={"timestamp": _now_ms()})
        self.memo_pool.append(entry)
        return entry

    def add_operation(self, operation: Operation) -> Operation:
        entry = operation.model_copy(update={"timestamp": _now_ms()})
        self.operation_pool.append(entry)
        return entry

    def update_operation_args(self, operation_id: str, args: Dict[str, Any]) -> bool:
        """Replace the arguments of the most recent operation with *operation_id*."""
        for operation in reversed(self.operation_pool):
            if operation.id == operation_id:
                operation.args = dict(args)
                return True
        logger.warning("No operation with id '%s' to update", operation_id)
        return False

    def update_operation_result(self, operation_id: str, result: Any) -> bool:
        """Attach *result* to the most recent operation with *operation_id*."""
        for operation in reversed(self.operation_pool):
            if operation.id == operation_id:
                operation.result = result
                return True
        logger.warning("No operation with id '%s' to update", operation_id)
        return False

    # ------------------------------------------------------------------ #
    # Readers
    # ------------------------------------------------------------------ #
    def get_all_contexts(self) -> List[ContextView]:
        """All six pools, always in the same order and regardless of emptiness."""
        contents: Dict[PoolType, Any] = {
            PoolType.THINKING: self.thinking,
            PoolType.TODOS: _dump(self.todos),
            PoolType.REFLECTIONS: _dump(self.reflections),
            PoolType.CODE_POOL: _dump(self.code_pool),
            PoolType.MEMO_POOL: _dump(self.memo_pool),
            PoolType.OPERATION_POOL: _dump(self.operation_pool),
        }
        return [
            ContextView(name=POOL_NAMES[pool], type=pool, content=contents[pool])
            for pool in PoolType
        ]

    def get_memo_pool(self) -> List[Memo]:
        return list(self.memo_pool)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def to_dict(self) -> Dict[str, Any]:
        return {
            "thinking": self.thinking,
            "todos": _dump(self.todos),
            "reflections": _dump(self.reflections),
            "code_pool": _dump(self.code_pool),
            "memo_pool": _dump(self.memo_pool),
            "operation_pool": _dump(self.operation_pool),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "WorkingMemory":
        memory = cls()
        data = data or {}
        memory.thinking = data.get("thinking") or ""
        memory.todos = [TodoItem.model_validate(t) for t in data.get("todos") or []]
        memory.reflections = [Reflection.model_validate(r) for r in data.get("reflections") or []]
        memory.code_pool = [CodeItem.model_validate(c) for c in data.get("code_pool") or []]
        memory.memo_pool = [Memo.model_validate(m) for m in data.get("memo_pool") or []]
        memory.operation_pool = [
            Operation.model_validate(o) for o in data.get("operation_pool") or []
        ]
        return memory


def _dump(entries: Sequence[Any]) -> List[Dict[str, Any]]:
    return [entry.model_dump(mode="json") for entry in entries]
