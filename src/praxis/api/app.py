"""
Core API backend for Praxis.

This module exposes the orchestrator through a RESTful API used by the CLI and other frontends:

- **GET /health** - liveness probe.
- **GET/PUT /settings** - LLM and tool settings (API key masked); updates drop live sessions.
- **GET/PUT /workdir** - the directory every tool is sandboxed to.
- **POST /sessions**, **GET /sessions**, **GET/DELETE /sessions/{id}** - session management.
- **POST /sessions/{id}/messages** - run one turn, streamed as newline-delimited JSON events.
- **POST /sessions/{id}/stop** - stop the running (or the next) turn.
"""

import json
import logging
from pathlib import Path
from typing import (
    AsyncIterator,
    Dict,
    List,
)

from fastapi import (
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from praxis import __version__
from praxis.api.models import (
    MessageRequest,
    SessionDetail,
    SessionResponse,
    SettingsUpdate,
    SettingsView,
    WorkDirRequest,
    WorkDirResponse,
)
from praxis.api.sessions import (
    SessionRegistry,
    SessionState,
)
from praxis.common import (
    AnsiColors,
    colored_print,
)
from praxis.config import (
    Settings,
    settings as default_settings,
)
from praxis.core.errors import (
    ConfigError,
    InputError,
)
from praxis.core.schema import (
    AgentEvent,
    CancellationToken,
    EventType,
)
from praxis.memory.session_store import (
    SessionStore,
    SessionSummary,
    new_session_id,
)

logger = logging.getLogger(__name__)

NDJSON = "application/x-ndjson"


def _ndjson(event: AgentEvent) -> str:
    return json.dumps(event.to_payload(), ensure_ascii=False) + "\n"


async def stream_turn(
    registry: SessionRegistry, state: SessionState, message: str, token: CancellationToken
) -> AsyncIterator[str]:
    """
    Run one turn and yield its events as NDJSON lines.

    Once the token is cancelled nothing more is forwarded except a final ``stopped`` event, and
    the session is not persisted.
    """
    events = state.orchestrator.process_message(
        message, state.memory, state.transcript, state.tool_invoker(token), token
    )
    try:
        async for event in events:
            if token.cancelled:
                break
            yield _ndjson(event)
    finally:
        await events.aclose()
        registry.end_task(state.session_id)

    if token.cancelled:
        logger.info("Turn for session %s stopped", state.session_id)
        yield _ndjson(AgentEvent(type=EventType.STOPPED))
        return

    try:
        await registry.persist(state)
    except OSError as exc:
        logger.error("Failed to save session %s: %s", state.session_id, exc)
        yield _ndjson(AgentEvent(type=EventType.ERROR, error=f"Failed to save session: {exc}"))


def create_app(
    settings: Settings | None = None, registry: SessionRegistry | None = None
) -> FastAPI:
    """Build the FastAPI application around one :class:`SessionRegistry`."""
    settings = settings or default_settings
    if registry is None:
        registry = SessionRegistry(settings, SessionStore(settings.DATA_DIR))

    app = FastAPI(title="Praxis API", version=__version__, description="Praxis agent API")
    app.state.settings = settings
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[f"http://localhost:{settings.API_PORT}"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _session(session_id: str) -> SessionState:
        try:
            return registry.get(session_id)
        except (ConfigError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    # -----------------------------------------------------------------------
    # Routes
    # -----------------------------------------------------------------------
    @app.get("/health", summary="Health check")
    async def health() -> Dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.get("/settings", response_model=SettingsView, summary="Current settings")
    async def get_settings() -> SettingsView:
        return SettingsView.from_settings(settings)

    @app.put("/settings", response_model=SettingsView, summary="Update settings")
    async def put_settings(update: SettingsUpdate) -> SettingsView:
        update.apply(settings)
        registry.invalidate_all()
        logger.info("Settings updated: %s", sorted(update.model_fields_set))
        return SettingsView.from_settings(settings)

    @app.get("/workdir", response_model=WorkDirResponse, summary="Current working directory")
    async def get_workdir() -> WorkDirResponse:
        return WorkDirResponse(work_directory=settings.WORK_DIRECTORY)

    @app.put("/workdir", response_model=WorkDirResponse, summary="Set the working directory")
    async def put_workdir(req: WorkDirRequest) -> WorkDirResponse:
        path = Path(req.path).expanduser()
        if not path.is_dir():
            raise HTTPException(status_code=400, detail=f"Not a directory: {req.path}")
        settings.WORK_DIRECTORY = str(path.resolve())
        registry.invalidate_all()
        logger.info("Working directory set to %s", settings.WORK_DIRECTORY)
        return WorkDirResponse(work_directory=settings.WORK_DIRECTORY)

    @app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
    async def create_session() -> SessionResponse:
        session_id = new_session_id()
        _session(session_id)
        return SessionResponse(session_id=session_id)

    @app.get("/sessions", response_model=List[SessionSummary], summary="List saved sessions")
    async def list_sessions() -> List[SessionSummary]:
        try:
            return registry.store.list(registry.work_directory())
        except ConfigError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/sessions/{session_id}", response_model=SessionDetail, summary="Load a session")
    async def get_session(session_id: str) -> SessionDetail:
        try:
            found = registry.exists(session_id)
        except (ConfigError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not found:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        state = _session(session_id)
        return SessionDetail(
            session_id=session_id,
            title=state.title,
            messages=state.transcript.messages_for_inference(include_full_content=True),
            context=state.memory.to_dict(),
        )

    @app.delete("/sessions/{session_id}", summary="Delete a session")
    async def delete_session(session_id: str) -> Dict[str, bool]:
        try:
            deleted = registry.store.delete(registry.work_directory(), session_id)
        except (ConfigError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        registry.invalidate(session_id)
        return {"deleted": deleted}

    @app.post("/sessions/{session_id}/messages", summary="Run one turn (NDJSON event stream)")
    async def post_message(session_id: str, req: MessageRequest) -> StreamingResponse:
        state = _session(session_id)
        try:
            token = registry.begin_task(session_id)
        except InputError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc

        if token is None:
            logger.info("Session %s had a pending stop; turn not started", session_id)

            async def _stopped() -> AsyncIterator[str]:
                yield _ndjson(AgentEvent(type=EventType.STOPPED))

            return StreamingResponse(_stopped(), media_type=NDJSON)

        return StreamingResponse(
            stream_turn(registry, state, req.message, token), media_type=NDJSON
        )

    @app.post("/sessions/{session_id}/stop", summary="Stop the running turn")
    async def stop_session(session_id: str) -> Dict[str, bool]:
        registry.request_stop(session_id)
        return {"stopped": True}

    @app.get("/", summary="API root")
    async def root() -> Dict[str, str]:
        """Return a simple welcome message."""
        return {"message": "Welcome to the Praxis API! Use /docs for API documentation."}

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (development only).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of library users
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = default_settings.LOG_LEVEL

    logger.info(
        "Starting Praxis API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"Praxis API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "praxis.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m praxis.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
