"""Dispatches tool calls to the session's tools and wraps errors."""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    Iterable,
)

from praxis.core.errors import (
    TaskCancelledError,
    ToolExecutionError,
)
from praxis.core.schema import CancellationToken
from praxis.tools import Tool

logger = logging.getLogger(__name__)


class ToolInvoker:
    """
    Async ``(name, args) -> result`` callback handed to the Interaction Agent.

    Parameters
    ----------
    tools:
        The tool instances enabled for this session.
    cancellation:
        Turn-scoped flag; checked before every tool runs.
    """

    def __init__(self, tools: Iterable[Tool], cancellation: CancellationToken | None = None):
        self._tools: Dict[str, Tool] = {tool.name: tool for tool in tools}
        self._cancellation = cancellation

    async def __call__(self, name: str, args: Dict[str, Any] | None = None) -> Any:
        """
        Look up *name* and invoke it with *args* in a worker thread.

        Returns
        -------
        Any
            Whatever the tool returns, including ``{"success": False, ...}`` domain failures.

        Raises
        ------
        TaskCancelledError
            If the turn was stopped.
        ToolExecutionError
            If the tool is missing or its invocation raises an exception.
        """
        if self._cancellation is not None and self._cancellation.cancelled:
            logger.info("Task cancelled; skipping tool '%s'", name)
            raise TaskCancelledError("Task was stopped")

        if args is None:
            args = {}

        tool = self._tools.get(name)
        if tool is None:
            raise ToolExecutionError(f"Tool '{name}' is not registered.")

        try:
            logger.debug("Executing tool '%s' with args=%s", name, args)
            return await asyncio.to_thread(tool.execute, args)
        except ToolExecutionError:
            logger.warning("Tool '%s' rejected its arguments", name, exc_info=True)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc
