"""
Tests for the six-pool working memory and the JSON session store.

Run with:
$ pytest -q
"""

import json
import time
from pathlib import Path

import pytest

from praxis.core.schema import (
    CodeItem,
    Memo,
    Operation,
    PoolType,
    Reflection,
    ReflectionType,
    TodoItem,
)
from praxis.memory.session_store import (
    SessionRecord,
    SessionStore,
    new_session_id,
)
from praxis.memory.working_memory import WorkingMemory


# ---------------------------------------------------------------------------
# Working memory
# ---------------------------------------------------------------------------
def test_contexts_always_list_six_pools_in_order() -> None:
    """get_all_contexts() returns every pool even when empty."""

    contexts = WorkingMemory().get_all_contexts()
    assert [ctx.type for ctx in contexts] == list(PoolType)
    assert [ctx.name for ctx in contexts] == [
        "Thinking",
        "TODO list",
        "Reflection history",
        "Code pool",
        "Memo pool",
        "Operation pool",
    ]
    assert contexts[0].content == ""
    assert all(ctx.content == [] for ctx in contexts[1:])


def test_set_todos_takes_a_snapshot() -> None:
    """Later changes to the caller's TODOs do not leak into memory."""

    memory = WorkingMemory()
    todos = [TodoItem(title="a")]
    memory.set_todos(todos)
    todos[0].title = "changed"
    assert memory.todos[0].title == "a"


def test_appends_are_stamped_and_ordered() -> None:
    """Append-only pools keep insertion order and stamp each entry."""

    memory = WorkingMemory()
    first = memory.add_memo(Memo(title="one", content="1", timestamp=0))
    second = memory.add_memo(Memo(title="two", content="2", timestamp=0))
    memory.add_code(CodeItem(content="print()"))
    memory.add_reflection(Reflection(type=ReflectionType.SUCCESS, reason="ok"))

    assert first.timestamp > 0 and second.timestamp >= first.timestamp
    assert [memo.title for memo in memory.get_memo_pool()] == ["one", "two"]
    pools = {ctx.type: ctx.content for ctx in memory.get_all_contexts()}
    assert pools[PoolType.CODE_POOL][0]["content"] == "print()"
    assert pools[PoolType.REFLECTIONS][0]["type"] == "SUCCESS"


def test_update_operation_result_targets_latest_match() -> None:
    """The most recent operation with the id receives the result."""

    memory = WorkingMemory()
    memory.add_operation(Operation(id="x", tool="read_file"))
    memory.add_operation(Operation(id="x", tool="read_file"))
    assert memory.update_operation_result("x", {"ok": True})
    assert memory.operation_pool[0].result is None
    assert memory.operation_pool[1].result == {"ok": True}
    assert not memory.update_operation_result("missing", 1)


def test_update_operation_args_replaces_arguments() -> None:
    """Corrected arguments land on the most recent matching operation."""

    memory = WorkingMemory()
    memory.add_operation(Operation(id="x", tool="search_text", args={"pattern": "a"}))
    assert memory.update_operation_args("x", {"pattern": "ab", "root_path": "."})
    assert memory.operation_pool[0].args == {"pattern": "ab", "root_path": "."}
    assert not memory.update_operation_args("missing", {})


def test_working_memory_round_trip() -> None:
    """to_dict()/from_dict() restore every pool."""

    memory = WorkingMemory()
    memory.set_thinking("plan it")
    memory.set_todos([TodoItem(title="t", description="d")])
    memory.add_memo(Memo(title="m", content="c"))
    memory.add_operation(Operation(id="o", tool="file_info", args={"path": "a"}, result=1))

    data = json.loads(json.dumps(memory.to_dict()))
    restored = WorkingMemory.from_dict(data)
    assert restored.to_dict() == memory.to_dict()
    assert WorkingMemory.from_dict(None).to_dict() == WorkingMemory().to_dict()


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------
def test_new_session_id_format() -> None:
    """Session ids carry a millisecond timestamp."""

    session_id = new_session_id()
    assert session_id.startswith("session_")
    assert session_id.split("_", 1)[1].isdigit()


def test_save_load_and_list(tmp_path: Path) -> None:
    """Saved sessions load back and list newest first, per working directory."""

    store = SessionStore(tmp_path)
    store.save(SessionRecord(id="session_1", title="First", work_directory="/w"))
    time.sleep(0.01)
    store.save(
        SessionRecord(
            id="session_2",
            title="Second",
            work_directory="/w",
            history={"history": [{"role": "user", "content": "hi"}]},
        )
    )
    store.save(SessionRecord(id="session_3", work_directory="/other"))

    loaded = store.load("/w", "session_2")
    assert loaded is not None and loaded.title == "Second"

    listing = store.list("/w")
    assert [s.id for s in listing] == ["session_2", "session_1"]
    assert listing[0].message_count == 1
    assert [s.id for s in store.list("/other")] == ["session_3"]
    assert store.list("/nowhere") == []


def test_save_keeps_created_at(tmp_path: Path) -> None:
    """Re-saving keeps the creation time and bumps the update time."""

    store = SessionStore(tmp_path)
    first = store.save(SessionRecord(id="s", work_directory="/w", created_at=1, updated_at=1))
    again = store.save(SessionRecord(id="s", work_directory="/w", title="Renamed"))
    assert again.created_at == first.created_at == 1
    assert again.updated_at > 1
    assert not list(store.root.rglob("*.tmp"))


def test_load_missing_or_corrupt(tmp_path: Path) -> None:
    """Missing and unreadable files both load as None."""

    store = SessionStore(tmp_path)
    assert store.load("/w", "absent") is None

    path = store._path("/w", "broken")
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    assert store.load("/w", "broken") is None


def test_delete(tmp_path: Path) -> None:
    """delete() reports whether a file was removed."""

    store = SessionStore(tmp_path)
    store.save(SessionRecord(id="s", work_directory="/w"))
    assert store.delete("/w", "s") is True
    assert store.delete("/w", "s") is False


@pytest.mark.parametrize("session_id", ["", "../escape", "a/b", ".hidden"])
def test_invalid_session_ids_are_rejected(tmp_path: Path, session_id: str) -> None:
    """Ids that could leave the sessions folder raise ValueError."""

    with pytest.raises(ValueError):
        SessionStore(tmp_path).load("/w", session_id)
