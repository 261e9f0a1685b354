"""
Tests for the session transcript: placeholders, tool-call pairing, token budget and compression.

Run with:
$ pytest -q
"""

import json

import pytest
from conftest import FakeGateway

from praxis.agent.compression import ContextCompressionAgent
from praxis.core.errors import TranscriptError
from praxis.core.schema import (
    Role,
    ToolCall,
)
from praxis.memory.transcript import (
    PlaceholderArena,
    Transcript,
)


def _with_tool_call(call_id: str = "c1") -> Transcript:
    transcript = Transcript()
    transcript.add_message(Role.USER, "read it")
    transcript.add_message(
        Role.ASSISTANT, "", [ToolCall(id=call_id, name="read_file", arguments={"path": "a.txt"})]
    )
    return transcript


def test_arena_handles_are_one_based() -> None:
    """Handles start at 1 and unknown handles return None."""

    arena = PlaceholderArena("CODE")
    assert arena.add("x") == 1
    assert arena.add("y") == 2
    assert arena.get(2) == "y"
    assert arena.get(0) is None and arena.get(3) is None
    assert arena.placeholder(2) == "[CODE_2]"


def test_code_blocks_become_placeholders() -> None:
    """Fenced code is parked and restored only on request."""

    transcript = Transcript()
    transcript.add_message(Role.USER, "look:\n```py\nprint(1)\n```\nand\n```\nx = 2\n```")

    stored = transcript.messages[0].content
    assert stored == "look:\n[CODE_1]\nand\n[CODE_2]"
    assert transcript.messages_for_inference()[0]["content"] == stored
    full = transcript.messages_for_inference(include_full_content=True)[0]["content"]
    assert full == "look:\n```py\nprint(1)\n```\nand\n```\nx = 2\n```"


def test_tool_result_placeholder_expands_to_json() -> None:
    """``[TOOL_n]`` expands to the parked result's JSON."""

    transcript = Transcript()
    placeholder = transcript.add_tool_result({"lines": 3})
    assert placeholder == "[TOOL_1]"
    transcript.add_message(Role.ASSISTANT, f"see {placeholder}")
    full = transcript.messages_for_inference(include_full_content=True)[0]["content"]
    assert full == 'see {"lines": 3}'


def test_tool_messages_cannot_be_added_directly() -> None:
    """add_message() refuses the tool role."""

    with pytest.raises(TranscriptError):
        Transcript().add_message(Role.TOOL, "orphan")


def test_tool_call_arguments_are_canonical_json() -> None:
    """Arguments are stored as sorted JSON, whatever shape they arrive in."""

    transcript = Transcript()
    transcript.add_message(
        Role.ASSISTANT,
        "",
        [
            ToolCall(id="a", name="t", arguments={"b": 1, "a": 2}),
            {"id": "b", "function": {"name": "t", "arguments": '{"z": 0, "y": 1}'}},
            {"id": "c", "name": "t", "arguments": "not json"},
        ],
    )
    calls = transcript.messages_for_inference()[0]["tool_calls"]
    assert [call["function"]["arguments"] for call in calls] == [
        '{"a": 2, "b": 1}',
        '{"y": 1, "z": 0}',
        "{}",
    ]
    assert calls[0]["type"] == "function"


def test_tool_result_pairs_with_call() -> None:
    """A tool result is accepted for a known call id and serialized as JSON."""

    transcript = _with_tool_call()
    message = transcript.add_tool_result_message("c1", {"success": True})
    assert message.to_wire() == {
        "role": "tool",
        "tool_call_id": "c1",
        "content": '{"success": true}',
    }
    assert transcript.pending_tool_call_ids() == []
    transcript.validate()


def test_tool_result_for_unknown_call_is_rejected() -> None:
    """An id with no matching assistant call breaks the pairing rule."""

    transcript = _with_tool_call()
    with pytest.raises(TranscriptError):
        transcript.add_tool_result_message("nope", "x")
    assert transcript.pending_tool_call_ids() == ["c1"]


def test_validate_flags_duplicate_call_ids() -> None:
    """A tool message whose id matches two assistant calls is invalid."""

    transcript = _with_tool_call("dup")
    transcript.add_message(Role.ASSISTANT, "", [ToolCall(id="dup", name="read_file")])
    with pytest.raises(TranscriptError):
        transcript.add_tool_result_message("dup", "x")


def test_current_turn_messages() -> None:
    """The current turn starts at the latest user message."""

    transcript = Transcript()
    assert transcript.current_turn_messages() == []
    transcript.add_message(Role.ASSISTANT, "hello")
    assert transcript.current_turn_start() == -1
    assert transcript.current_turn_messages() == []

    transcript.add_message(Role.USER, "first")
    transcript.add_message(Role.ASSISTANT, "one")
    transcript.add_message(Role.USER, "second")
    transcript.add_message(Role.ASSISTANT, "two")
    assert [m["content"] for m in transcript.current_turn_messages()] == ["second", "two"]


def test_estimate_tokens_weights_cjk() -> None:
    """CJK characters weigh 2 tokens, everything else 0.75."""

    transcript = Transcript()
    transcript.add_message(Role.USER, "abcd")
    assert transcript.estimate_tokens() == 3
    transcript.add_message(Role.ASSISTANT, "你好a")
    assert transcript.estimate_tokens() == 3 + 5


def test_needs_compression_threshold() -> None:
    """Compression is due at 90% of the budget."""

    transcript = Transcript()
    transcript.add_message(Role.USER, "x" * 120)  # 90 tokens
    assert transcript.needs_compression(99)
    assert not transcript.needs_compression(101)


async def test_compress_replaces_earlier_turns_in_batches() -> None:
    """Messages before the current turn become ceil(N/10) summaries; the turn stays."""

    gateway = FakeGateway(responder=lambda messages: "summary")
    agent = ContextCompressionAgent(gateway)

    transcript = Transcript()
    for i in range(12):
        role = Role.USER if i % 2 == 0 else Role.ASSISTANT
        transcript.add_message(role, f"message {i} " + "x" * 50)
    transcript.add_message(Role.USER, "current question")

    assert await transcript.compress(agent, max_context_length=100)
    messages = transcript.messages
    assert len(messages) == 3
    assert messages[0].content == "[Compressed summary 1-10]: summary"
    assert messages[0].summary_of == (1, 10)
    assert messages[1].content == "[Compressed summary 11-12]: summary"
    assert messages[1].role == Role.ASSISTANT
    assert messages[2].content == "current question"
    assert len(gateway.calls) == 2


async def test_compress_noop_cases() -> None:
    """Under budget, or with nothing before the current turn, the transcript is untouched."""

    gateway = FakeGateway(responder=lambda messages: "summary")
    agent = ContextCompressionAgent(gateway)

    transcript = Transcript()
    transcript.add_message(Role.USER, "x" * 400)
    assert not await transcript.compress(agent, max_context_length=10_000)
    assert not await transcript.compress(agent, max_context_length=10)
    assert len(transcript) == 1
    assert gateway.calls == []


def test_round_trip_through_dict() -> None:
    """to_dict()/from_dict() keep messages and both arenas."""

    transcript = _with_tool_call()
    transcript.add_tool_result_message("c1", "ok")
    transcript.add_message(Role.ASSISTANT, "```\ncode\n```")
    transcript.add_tool_result([1, 2])

    data = json.loads(json.dumps(transcript.to_dict()))
    assert set(data) == {"history", "code_pool", "tool_result_pool"}

    restored = Transcript.from_dict(data)
    assert restored.messages_for_inference(True) == transcript.messages_for_inference(True)
    assert restored.code_pool.items() == ["```\ncode\n```"]
    restored.validate()
