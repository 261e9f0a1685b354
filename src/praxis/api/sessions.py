"""
Process-wide session registry.

Maps a session id to its orchestrator, working memory and transcript, loading persisted state on
first use.  The registry also owns the turn-scoped cancellation tokens.  Everything here is
invalidated wholesale when the working directory or the settings change.
"""

import logging
from pathlib import Path
from typing import (
    Callable,
    Dict,
    List,
)

from praxis.agent.orchestrator import Orchestrator
from praxis.agent.session_title import (
    DEFAULT_TITLE,
    SessionTitleAgent,
)
from praxis.agent.tool_executor import ToolInvoker
from praxis.config import Settings
from praxis.core.errors import (
    ConfigError,
    InputError,
)
from praxis.core.schema import CancellationToken
from praxis.llm.gateway import LLMGateway
from praxis.memory.session_store import (
    SessionRecord,
    SessionStore,
)
from praxis.memory.transcript import Transcript
from praxis.memory.working_memory import WorkingMemory
from praxis.tools import (
    Tool,
    build_tools,
)

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[Settings, str, List[Tool]], Orchestrator]


class SessionState:
    """Live objects of one session."""

    def __init__(
        self,
        session_id: str,
        work_directory: str,
        orchestrator: Orchestrator,
        memory: WorkingMemory,
        transcript: Transcript,
        tools: List[Tool],
        title: str | None = None,
    ):
        self.session_id = session_id
        self.work_directory = work_directory
        self.orchestrator = orchestrator
        self.memory = memory
        self.transcript = transcript
        self.tools = tools
        self.title = title

    def tool_invoker(self, cancellation: CancellationToken | None) -> ToolInvoker:
        return ToolInvoker(self.tools, cancellation)


class SessionRegistry:
    """
    Keyed registry of :class:`SessionState` plus per-session cancellation tokens.

    Parameters
    ----------
    settings:
        Live settings; read again whenever a session is (re)built.
    store:
        Persistence for transcripts and working memory.
    orchestrator_factory:
        Builds the orchestrator for a session; defaults to :meth:`Orchestrator.from_settings`.
    title_agent:
        Names sessions after each turn; defaults to one built from the global LLM settings.
    """

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        orchestrator_factory: OrchestratorFactory | None = None,
        title_agent: SessionTitleAgent | None = None,
    ):
        self.settings = settings
        self.store = store
        self._factory = orchestrator_factory or Orchestrator.from_settings
        self._configured_title_agent = title_agent
        self._title_agent = title_agent
        self._sessions: Dict[str, SessionState] = {}
        self._tokens: Dict[str, CancellationToken] = {}

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #
    def work_directory(self) -> str:
        """
        The configured working directory.

        Raises
        ------
        ConfigError
            If no working directory is set.
        """
        if not self.settings.WORK_DIRECTORY:
            raise ConfigError("No working directory is set; choose one first")
        return str(Path(self.settings.WORK_DIRECTORY).resolve())

    def get(self, session_id: str) -> SessionState:
        """Return the live session, building it (and loading persisted state) on first use."""
        state = self._sessions.get(session_id)
        if state is not None:
            return state

        work_dir = self.work_directory()
        record = self.store.load(work_dir, session_id)
        tools = build_tools(work_dir, self.settings.ENABLED_TOOLS)
        state = SessionState(
            session_id=session_id,
            work_directory=work_dir,
            orchestrator=self._factory(self.settings, work_dir, tools),
            memory=WorkingMemory.from_dict(record.context if record else None),
            transcript=Transcript.from_dict(record.history if record else None),
            tools=tools,
            title=record.title if record else None,
        )
        self._sessions[session_id] = state
        logger.info(
            "Session %s ready (%s, %d message(s))",
            session_id,
            "restored" if record else "new",
            len(state.transcript),
        )
        return state

    def exists(self, session_id: str) -> bool:
        if session_id in self._sessions:
            return True
        return self.store.load(self.work_directory(), session_id) is not None

    def invalidate(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def invalidate_all(self) -> None:
        logger.info("Invalidating %d live session(s)", len(self._sessions))
        self._sessions.clear()
        self._title_agent = self._configured_title_agent

    async def persist(self, state: SessionState) -> SessionRecord:
        """Save the session, refreshing its title from the latest exchange."""
        messages = state.transcript.messages_for_inference()
        if len(messages) >= 2:
            state.title = await self._titles().generate(messages[-2:], state.title)
        elif not state.title:
            state.title = DEFAULT_TITLE

        record = SessionRecord(
            id=state.session_id,
            title=state.title,
            work_directory=state.work_directory,
            history=state.transcript.to_dict(),
            context=state.memory.to_dict(),
        )
        return self.store.save(record)

    def _titles(self) -> SessionTitleAgent:
        if self._title_agent is None:
            self._title_agent = SessionTitleAgent(LLMGateway(self.settings.llm_config_for()))
        return self._title_agent

    # ------------------------------------------------------------------ #
    # Cancellation
    # ------------------------------------------------------------------ #
    def request_stop(self, session_id: str) -> None:
        """Cancel the running turn, or pre-emptively cancel the next one if none is running."""
        token = self._tokens.get(session_id)
        if token is None:
            self._tokens[session_id] = CancellationToken(cancelled=True)
            logger.info("Stop requested for idle session %s; next turn will not start", session_id)
            return
        token.cancel()
        logger.info("Stop requested for session %s", session_id)

    def begin_task(self, session_id: str) -> CancellationToken | None:
        """
        Register a new turn and return its token.

        Returns ``None`` (and clears the flag) when a stop was requested before the turn began.

        Raises
        ------
        InputError
            If a turn is already running for this session.
        """
        token = self._tokens.get(session_id)
        if token is not None:
            if token.cancelled:
                del self._tokens[session_id]
                return None
            raise InputError("A task is already running for this session")
        token = self._tokens[session_id] = CancellationToken()
        return token

    def end_task(self, session_id: str) -> None:
        self._tokens.pop(session_id, None)
