"""Application settings using Pydantic BaseSettings for environment variable management."""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """
    Global application settings loaded from environment variables.

    Attributes:
        gemini_api_key: Google Gemini API key (only needed for LLM planning)
        gemini_model: Default Gemini model to use
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
        max_plan_steps: Upper bound on steps a proposed plan may contain
        tool_timeout_seconds: Per-tool execution timeout
        run_timeout_seconds: Default whole-run timeout (None disables it)
        default_fact_confidence: Confidence stored with every tool result
        fallback_data_tool: Tool used for appended recovery data-collection steps
        default_macro_timeframe: Macro timeframe when the caller gives none
        default_micro_timeframe: Micro timeframe when the caller gives none
    """

    gemini_api_key: str | None = Field(
        default=None,
        description="Google Gemini API key"
    )
    gemini_model: str = Field(
        default="gemini-1.5-pro",
        description="Default Gemini model identifier"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )
    max_plan_steps: int = Field(
        default=20,
        ge=1,
        description="Maximum number of steps accepted in a proposed plan"
    )
    tool_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every tool execution"
    )
    run_timeout_seconds: float | None = Field(
        default=None,
        description="Default timeout for a whole analysis run"
    )
    default_fact_confidence: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Confidence stored with tool results, failures included"
    )
    fallback_data_tool: str = Field(
        default="getMarketData",
        description="Tool name used by appended recovery steps"
    )
    default_macro_timeframe: str = Field(
        default="2_weeks",
        description="Macro trend timeframe label"
    )
    default_micro_timeframe: str = Field(
        default="3_days",
        description="Micro trend timeframe label"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Singleton instance - import this throughout the application
settings = Settings()
