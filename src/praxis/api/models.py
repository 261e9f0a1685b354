"""
Pydantic models for Praxis API requests and responses.
This module defines the request and response schemas used by the Praxis API.
"""

from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from praxis.config import (
    AgentOverride,
    Settings,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class SessionResponse(BaseModel):
    """Response with session information."""

    session_id: str


class SessionDetail(BaseModel):
    """A session's transcript and working memory."""

    session_id: str
    title: str | None = None
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)


class MessageRequest(BaseModel):
    """Incoming user message."""

    message: str = Field(..., min_length=1, description="User message for Praxis")


class WorkDirRequest(BaseModel):
    path: str = Field(..., description="Directory every tool is sandboxed to")


class WorkDirResponse(BaseModel):
    work_directory: Optional[str] = None


def mask_secret(secret: str | None) -> str | None:
    if not secret:
        return secret
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"


class SettingsView(BaseModel):
    """Current LLM and tool settings, with the API key masked."""

    api_url: str
    api_key: Optional[str] = None
    model: Optional[str] = None
    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    max_context_length: int
    enabled_tools: List[str] = Field(default_factory=list)
    agent_settings: Dict[str, AgentOverride] = Field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsView":
        return cls(
            api_url=settings.LLM_API_URL,
            api_key=mask_secret(settings.LLM_API_KEY),
            model=settings.LLM_MODEL,
            http_proxy=settings.HTTP_PROXY,
            https_proxy=settings.HTTPS_PROXY,
            max_context_length=settings.MAX_CONTEXT_LENGTH,
            enabled_tools=list(settings.ENABLED_TOOLS),
            agent_settings={
                key: override.model_copy(update={"api_key": mask_secret(override.api_key)})
                for key, override in settings.AGENT_SETTINGS.items()
            },
        )


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields keep their value."""

    api_url: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None
    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    max_context_length: Optional[int] = Field(None, gt=0)
    enabled_tools: Optional[List[str]] = None
    agent_settings: Optional[Dict[str, AgentOverride]] = None

    def apply(self, settings: Settings) -> None:
        """Copy every field that was explicitly set onto *settings*."""
        fields = {
            "api_url": "LLM_API_URL",
            "api_key": "LLM_API_KEY",
            "model": "LLM_MODEL",
            "http_proxy": "HTTP_PROXY",
            "https_proxy": "HTTPS_PROXY",
            "max_context_length": "MAX_CONTEXT_LENGTH",
            "enabled_tools": "ENABLED_TOOLS",
            "agent_settings": "AGENT_SETTINGS",
        }
        for name in self.model_fields_set:
            setattr(settings, fields[name], getattr(self, name))
