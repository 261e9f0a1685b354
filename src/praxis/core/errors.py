"""Exception taxonomy shared by the gateway, the tools, the agents and the orchestrator."""

from enum import Enum


class PraxisError(RuntimeError):
    """Base class for every error raised by Praxis."""


class ConfigError(PraxisError):
    """API key, model or working directory is missing."""


class InputError(PraxisError):
    """Caller passed malformed input (e.g. an empty message list)."""


class ApiErrorKind(str, Enum):
    """Classification of a failed chat-completions request."""

    BAD_REQUEST = "bad_request"
    AUTH_FAILURE = "auth_failure"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_UNREACHABLE = "network_unreachable"


class ApiCallError(PraxisError):
    """A classified transport or HTTP failure."""

    def __init__(self, kind: ApiErrorKind, message: str, status_code: int | None = None):
        super().__init__(f"API call failed: {message}")
        self.kind = kind
        self.status_code = status_code
        self.detail = message


class ToolExecutionError(PraxisError):
    """Raised when a requested tool cannot run or fails."""


class ToolArgumentError(ToolExecutionError):
    """A required tool argument is missing or has the wrong shape."""


class SandboxViolationError(ToolExecutionError):
    """A path resolved outside the working directory."""


class TaskCancelledError(ToolExecutionError):
    """The turn was stopped before the tool could run."""


class PlanParseError(PraxisError):
    """The planning reply held no parsable TODO array."""


class TranscriptError(PraxisError):
    """The transcript would break the tool-call pairing invariant."""


class StageError(PraxisError):
    """Any failure inside one pipeline stage, tagged with that stage's name."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} stage failed: {cause}")
        self.stage = stage
        self.cause = cause
