"""
Tool registry for Praxis.

This module provides the :class:`Tool` capability contract, a decorator to register tool classes,
and :func:`build_tools` to instantiate them against one working directory.

Every tool is sandboxed: paths are resolved against the working-directory root and any resolution
that escapes it raises :class:`~praxis.core.errors.SandboxViolationError`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from pathlib import Path
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Mapping,
    Type,
)

from praxis.core.errors import (
    SandboxViolationError,
    ToolArgumentError,
)
from praxis.core.schema import ToolInfo

logger = logging.getLogger(__name__)


class Tool(ABC):
    """Base class for every tool exposed to the Interaction Agent."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    description: ClassVar[str]
    input_schema: ClassVar[Dict[str, Any]]

    def __init__(self, work_directory: str | Path):
        self.work_directory = Path(work_directory).resolve()

    # ------------------------------------------------------------------ #
    # Helpers for subclasses
    # ------------------------------------------------------------------ #
    def resolve_path(self, relative: str) -> Path:
        """
        Resolve *relative* against the working directory.

        Raises
        ------
        SandboxViolationError
            If the resolved path is not inside the working directory.
        """
        target = (self.work_directory / relative).resolve()
        if not target.is_relative_to(self.work_directory):
            raise SandboxViolationError(f"Path escapes the working directory: {relative}")
        return target

    def relative(self, path: Path) -> str:
        """Path relative to the working directory, as shown to the model."""
        rel = path.relative_to(self.work_directory).as_posix()
        return rel or "."

    @staticmethod
    def require(args: Mapping[str, Any], *names: str) -> None:
        """Raise :class:`ToolArgumentError` unless every argument in *names* is present."""
        missing = [name for name in names if args.get(name) in (None, "")]
        if missing:
            raise ToolArgumentError(f"Missing required argument(s): {', '.join(missing)}")

    # ------------------------------------------------------------------ #
    # Contract
    # ------------------------------------------------------------------ #
    @abstractmethod
    def execute(self, args: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Run the tool.

        Expected failures (missing file, bad regex) come back as ``{"success": False, "error"}``;
        only contract violations raise.
        """

    def definition(self) -> Dict[str, Any]:
        """OpenAI function-calling definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

    def info(self) -> ToolInfo:
        """Catalog entry for prompts."""
        return ToolInfo(
            name=self.name,
            display_name=self.display_name,
            description=self.description,
            input_schema=self.input_schema,
        )


TOOL_REGISTRY: Dict[str, Type[Tool]] = {}
"""Global registry of tool classes, in registration order."""


def register_tool(cls: Type[Tool]) -> Type[Tool]:
    """
    Register a tool class under its ``name``.

    Used as a class decorator::

        @register_tool
        class EchoTool(Tool):
            name = "echo"
            ...

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if cls.name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{cls.name}' is already registered.")
    logger.debug("Registering tool '%s'", cls.name)
    TOOL_REGISTRY[cls.name] = cls
    return cls


def build_tools(work_directory: str | Path, enabled: Iterable[str] | None = None) -> List[Tool]:
    """
    Instantiate registered tools for *work_directory*.

    An empty or missing *enabled* list means every registered tool.
    """
    # Import for registration side-effects
    from praxis.tools import filesystem  # noqa: F401  pylint: disable=import-outside-toplevel

    wanted = set(enabled or [])
    tools = [
        cls(work_directory) for name, cls in TOOL_REGISTRY.items() if not wanted or name in wanted
    ]
    logger.debug("Built %d tool(s): %s", len(tools), [tool.name for tool in tools])
    return tools
