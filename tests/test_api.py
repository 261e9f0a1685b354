"""
Tests for the HTTP API: settings, working directory, sessions and the NDJSON turn stream.

Run with:
$ pytest -q
"""

import json
from pathlib import Path

import pytest
from conftest import FakeGateway
from fastapi.testclient import TestClient

from praxis.agent.session_title import SessionTitleAgent
from praxis.api.app import (
    create_app,
    stream_turn,
)
from praxis.api.models import mask_secret
from praxis.api.sessions import SessionRegistry
from praxis.config import Settings
from praxis.core.errors import InputError
from praxis.memory.session_store import SessionStore


@pytest.fixture
def settings(tmp_path: Path, workdir: Path) -> Settings:
    return Settings(
        DATA_DIR=str(tmp_path / "data"),
        WORK_DIRECTORY=str(workdir),
        LLM_API_KEY="sk-secret-key-123",
        LLM_MODEL="test-model",
    )


@pytest.fixture
def registry(settings: Settings, make_orchestrator) -> SessionRegistry:
    def factory(settings, work_directory, tools):
        return make_orchestrator(
            context_selection=FakeGateway(responder=lambda messages: "0"),
            planning=FakeGateway(responder=lambda messages: "[]"),
            interaction=FakeGateway(streams=[["Hello from Praxis"]] * 5),
        )

    return SessionRegistry(
        settings,
        SessionStore(settings.DATA_DIR),
        orchestrator_factory=factory,
        title_agent=SessionTitleAgent(FakeGateway(responder=lambda messages: "Greeting")),
    )


@pytest.fixture
def client(settings: Settings, registry: SessionRegistry) -> TestClient:
    return TestClient(create_app(settings, registry))


def _events(response) -> list:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Basics
# ---------------------------------------------------------------------------
def test_health_and_root(client: TestClient) -> None:
    """Liveness and welcome endpoints respond."""

    assert client.get("/health").json() == {"status": "ok"}
    assert "Praxis" in client.get("/").json()["message"]


def test_mask_secret() -> None:
    """Short secrets are fully hidden; long ones keep four characters at each end."""

    assert mask_secret(None) is None
    assert mask_secret("short") == "****"
    assert mask_secret("sk-secret-key-123") == "sk-s...-123"


def test_settings_are_masked_and_updatable(client: TestClient, settings, registry) -> None:
    """GET masks the key; PUT updates only the given fields and drops live sessions."""

    view = client.get("/settings").json()
    assert view["api_key"] == "sk-s...-123"
    assert view["model"] == "test-model"

    registry.get("session_1")
    response = client.put("/settings", json={"model": "other-model", "max_context_length": 2048})
    assert response.status_code == 200
    assert response.json()["model"] == "other-model"
    assert settings.LLM_MODEL == "other-model"
    assert settings.MAX_CONTEXT_LENGTH == 2048
    assert settings.LLM_API_KEY == "sk-secret-key-123"
    assert registry._sessions == {}


def test_workdir(client: TestClient, settings, tmp_path: Path) -> None:
    """The working directory must exist and is stored resolved."""

    assert client.put("/workdir", json={"path": str(tmp_path / "missing")}).status_code == 400

    other = tmp_path / "other"
    other.mkdir()
    response = client.put("/workdir", json={"path": str(other)})
    assert response.status_code == 200
    assert response.json()["work_directory"] == str(other.resolve())
    assert client.get("/workdir").json()["work_directory"] == settings.WORK_DIRECTORY


# ---------------------------------------------------------------------------
# Sessions and turns
# ---------------------------------------------------------------------------
def test_session_lifecycle(client: TestClient) -> None:
    """Create, talk, list, load and delete a session."""

    session_id = client.post("/sessions").json()["session_id"]
    response = client.post(f"/sessions/{session_id}/messages", json={"message": "Hi there"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")

    events = _events(response)
    assert events[0] == {"type": "thinking", "status": "start"}
    assert events[-1] == {"type": "complete"}
    assert {"type": "content", "content": "Hello from Praxis"} in events

    listing = client.get("/sessions").json()
    assert [(s["id"], s["title"], s["message_count"]) for s in listing] == [
        (session_id, "Greeting", 2)
    ]

    detail = client.get(f"/sessions/{session_id}").json()
    assert [m["content"] for m in detail["messages"]] == ["Hi there", "Hello from Praxis"]
    assert detail["title"] == "Greeting"
    assert set(detail["context"]) == {
        "thinking",
        "todos",
        "reflections",
        "code_pool",
        "memo_pool",
        "operation_pool",
    }

    assert client.delete(f"/sessions/{session_id}").json() == {"deleted": True}
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_session_survives_registry_reset(client: TestClient, registry) -> None:
    """A persisted session is reloaded after the live registry is dropped."""

    client.post("/sessions/session_42/messages", json={"message": "Remember me"})
    registry.invalidate_all()
    state = registry.get("session_42")
    assert [m.content for m in state.transcript.messages] == ["Remember me", "Hello from Praxis"]
    assert state.title == "Greeting"


def test_empty_message_is_rejected(client: TestClient) -> None:
    """Blank messages fail validation."""

    assert client.post("/sessions/session_1/messages", json={"message": ""}).status_code == 422


def test_stop_before_turn_cancels_it(client: TestClient) -> None:
    """A stop requested while idle turns the next message into a lone stopped event."""

    assert client.post("/sessions/session_1/stop").json() == {"stopped": True}
    response = client.post("/sessions/session_1/messages", json={"message": "Hi"})
    assert _events(response) == [{"type": "stopped"}]

    response = client.post("/sessions/session_1/messages", json={"message": "Hi again"})
    assert _events(response)[-1] == {"type": "complete"}


def test_concurrent_turn_is_refused(client: TestClient, registry) -> None:
    """A second turn while one is running returns 409."""

    registry.begin_task("session_1")
    response = client.post("/sessions/session_1/messages", json={"message": "Hi"})
    assert response.status_code == 409
    registry.end_task("session_1")


def test_missing_work_directory(client: TestClient, settings) -> None:
    """Session endpoints need a working directory."""

    settings.WORK_DIRECTORY = None
    assert client.post("/sessions").status_code == 400
    assert client.get("/sessions").status_code == 400


def test_invalid_session_id(client: TestClient) -> None:
    """Ids that would escape the session folder are refused."""

    assert client.get("/sessions/.hidden").status_code == 400


# ---------------------------------------------------------------------------
# Registry and stream internals
# ---------------------------------------------------------------------------
def test_begin_task_semantics(registry) -> None:
    """Tokens are per session; a pending stop is consumed by the next begin."""

    token = registry.begin_task("s")
    with pytest.raises(InputError):
        registry.begin_task("s")
    registry.request_stop("s")
    assert token.cancelled
    registry.end_task("s")

    registry.request_stop("s")
    assert registry.begin_task("s") is None
    assert registry.begin_task("s") is not None


async def test_stream_turn_stops_without_saving(registry) -> None:
    """After a stop nothing but one stopped event is sent and nothing is saved."""

    state = registry.get("session_9")
    token = registry.begin_task("session_9")
    lines = stream_turn(registry, state, "Hi", token)

    first = json.loads(await lines.__anext__())
    token.cancel()
    rest = [json.loads(line) async for line in lines]

    assert first == {"type": "thinking", "status": "start"}
    assert rest == [{"type": "stopped"}]
    assert registry.store.load(state.work_directory, "session_9") is None
    assert registry.begin_task("session_9") is not None
