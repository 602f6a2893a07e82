"""
Configuration settings for AccelFlow.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "AccelFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Workflow Engine
    EXECUTION_TIMEOUT: int = 300  # Seconds
    WORKFLOW_MAX_NODES: int = 50
    WORKFLOW_MAX_DEFINITION_BYTES: int = 100_000
    WORKFLOW_MAX_INPUT_CHARS: int = 10_000
    HTTP_NODE_TIMEOUT: float = 30.0

    # External capabilities
    LLM_GATEWAY_URL: Optional[str] = None
    LLM_GATEWAY_TOKEN: Optional[str] = None
    DEFAULT_LLM_MODEL: str = "claude-haiku-4-5"
    ANTHROPIC_API_KEY: Optional[str] = None
    RETRIEVAL_URL: Optional[str] = None
    TAVILY_API_KEY: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"


# Global settings instance
settings = Settings()
