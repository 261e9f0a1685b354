"""Configuration settings for the application."""

from typing import (
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
)
from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)

AGENT_KEYS = (
    "thinking",
    "context_selection",
    "planning",
    "interaction",
    "reflection",
    "compression",
)


class LLMConfig(BaseModel):
    """Connection parameters for one chat-completions endpoint."""

    api_url: str = "https://api.openai.com/v1"
    api_key: str | None = None
    model: str | None = None
    http_proxy: str | None = None
    https_proxy: str | None = None
    max_tokens: int = 16384
    timeout: float = 120.0


class AgentOverride(BaseModel):
    """Per-agent model/endpoint override."""

    enabled: bool = False
    use_custom: bool = False  # False: only swap the model, keep key and URL
    api_url: str | None = None
    api_key: str | None = None
    model: str | None = None


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Directory every filesystem tool is sandboxed to
    WORK_DIRECTORY: str | None = None

    # LLM Configuration
    LLM_API_URL: str = "https://api.openai.com/v1"
    LLM_API_KEY: str | None = None
    LLM_MODEL: str | None = None
    HTTP_PROXY: str | None = None
    HTTPS_PROXY: str | None = None
    MAX_CONTEXT_LENGTH: int = 16384
    LLM_TIMEOUT: float = 120.0

    # Tool and agent configuration
    ENABLED_TOOLS: List[str] = Field(default_factory=list)  # empty means every registered tool
    AGENT_SETTINGS: Dict[str, AgentOverride] = Field(default_factory=dict)
    PROMPTS_DIR: str | None = None

    def llm_config_for(self, agent_key: str | None = None) -> LLMConfig:
        """
        Resolve the endpoint configuration for one role agent.

        An enabled override with ``use_custom`` may replace the key, URL and model; without it only
        the model is swapped.  Proxies and the context length are always global.
        """
        config = LLMConfig(
            api_url=self.LLM_API_URL,
            api_key=self.LLM_API_KEY,
            model=self.LLM_MODEL,
            http_proxy=self.HTTP_PROXY,
            https_proxy=self.HTTPS_PROXY,
            max_tokens=self.MAX_CONTEXT_LENGTH,
            timeout=self.LLM_TIMEOUT,
        )
        override = self.AGENT_SETTINGS.get(agent_key) if agent_key else None
        if override is None or not override.enabled:
            return config

        if override.use_custom:
            return config.model_copy(
                update={
                    "api_url": override.api_url or config.api_url,
                    "api_key": override.api_key or config.api_key,
                    "model": override.model or config.model,
                }
            )
        return config.model_copy(update={"model": override.model or config.model})


settings = Settings()
