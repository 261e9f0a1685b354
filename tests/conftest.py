"""Shared fixtures: a scripted gateway, a small working directory and an orchestrator builder."""

from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
)

import pytest

from praxis.agent.compression import ContextCompressionAgent
from praxis.agent.context_selection import ContextSelectionAgent
from praxis.agent.interaction import InteractionAgent
from praxis.agent.orchestrator import Orchestrator
from praxis.agent.planning import PlanningAgent
from praxis.agent.reflection import ReflectionAgent
from praxis.agent.thinking import ThinkingAgent
from praxis.llm.gateway import (
    ChatResult,
    ContentDelta,
    FunctionFragment,
    ToolCallDelta,
    ToolCallFragment,
)
from praxis.tools import build_tools


class FakeGateway:
    """
    Stand-in for :class:`LLMGateway` that replays scripted replies.

    ``replies`` feed :meth:`call_chat` (a ``str`` or an exception to raise); ``responder`` may
    compute the reply from the messages instead.  ``streams`` feed :meth:`stream_chat`: each entry
    is a list of deltas (plain strings become content deltas) or an exception.
    """

    def __init__(
        self,
        replies: List[Any] | None = None,
        streams: List[Any] | None = None,
        responder: Callable[[List[Dict[str, Any]]], str] | None = None,
    ):
        self.replies = list(replies or [])
        self.streams = list(streams or [])
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    async def call_chat(self, messages, tools=None, tool_choice=None) -> ChatResult:
        self.calls.append({"kind": "call", "messages": list(messages), "tools": tools})
        if self.responder is not None:
            reply: Any = self.responder(list(messages))
        else:
            reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return ChatResult(message={"role": "assistant", "content": reply})

    async def stream_chat(self, messages, tools=None, tool_choice=None):
        self.calls.append({"kind": "stream", "messages": list(messages), "tools": tools})
        script = self.streams.pop(0) if self.streams else []
        if isinstance(script, Exception):
            raise script
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield ContentDelta(content=item) if isinstance(item, str) else item


def tool_delta(
    index: int, call_id: str | None = None, name: str | None = None, arguments: str | None = None
) -> ToolCallDelta:
    """One streamed tool-call fragment."""
    return ToolCallDelta(
        tool_calls=[
            ToolCallFragment(
                index=index, id=call_id, function=FunctionFragment(name=name, arguments=arguments)
            )
        ]
    )


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text(
        "import os\n\n\ndef main():\n    print('hello')\n", encoding="utf-8"
    )
    (root / "src" / "util.py").write_text("def helper():\n    return 42\n", encoding="utf-8")
    (root / "README.md").write_text("# Demo\n\nSay hello.\n", encoding="utf-8")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core]\nhello = true\n", encoding="utf-8")
    return root


@pytest.fixture
def tools(workdir: Path):
    return build_tools(workdir)


@pytest.fixture
def make_orchestrator(tools, workdir: Path):
    """
    Build an :class:`Orchestrator` whose agents talk to :class:`FakeGateway` instances.

    Keyword arguments name the agent (``thinking``, ``context_selection``, ``planning``,
    ``interaction``, ``reflection``, ``compression``) and give its gateway; the rest get an empty
    one.  The gateways are exposed as ``orchestrator.gateways``.
    """

    def _build(max_context_length: int = 16384, **gateways: FakeGateway) -> Orchestrator:
        g = {
            key: gateways.get(key) or FakeGateway()
            for key in (
                "thinking",
                "context_selection",
                "planning",
                "interaction",
                "reflection",
                "compression",
            )
        }
        wd = str(workdir)
        orchestrator = Orchestrator(
            tools=tools,
            thinking=ThinkingAgent(g["thinking"], work_directory=wd),
            context_selection=ContextSelectionAgent(g["context_selection"], work_directory=wd),
            planning=PlanningAgent(g["planning"], work_directory=wd),
            interaction=InteractionAgent(g["interaction"], work_directory=wd),
            reflection=ReflectionAgent(g["reflection"], work_directory=wd),
            compression=ContextCompressionAgent(g["compression"], work_directory=wd),
            max_context_length=max_context_length,
        )
        orchestrator.gateways = g
        return orchestrator

    return _build
