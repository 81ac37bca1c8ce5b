"""
Application Configuration

Pydantic-based settings management using environment variables.
Nested by concern (LLM, spreadsheet source, system database, pipeline,
feedback learning, logging). Settings are read once and treated as
read-only for the life of the process.

Usage:
    from finquery.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.sheets.default_range)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Text-generation provider configuration."""

    default_provider: Literal["openai", "anthropic"] = Field(
        default="openai", description="Preferred LLM provider"
    )

    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_model: str = Field(default="gpt-4o", description="OpenAI chat model")

    anthropic_api_key: str | None = Field(
        None,
        description="Anthropic API key",
        min_length=20,
    )
    anthropic_model: str = Field(
        default="claude-3-5-haiku-20241022", description="Anthropic chat model"
    )

    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Temperature for LLM responses (0.0 = deterministic)",
    )
    max_tokens: int = Field(
        default=2000,
        gt=0,
        le=16000,
        description="Default maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=60,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @field_validator("anthropic_api_key")
    @classmethod
    def validate_anthropic_key(cls, v: str | None) -> str | None:
        """Validate Anthropic API key format."""
        if v and not v.startswith("sk-ant-"):
            raise ValueError("Anthropic API key must start with 'sk-ant-'")
        return v

    @property
    def resolved_provider(self) -> Literal["openai", "anthropic"]:
        """
        Provider actually used for requests.

        Anthropic is selected when it is the configured default or when no
        OpenAI key is available.
        """
        if self.default_provider == "anthropic" or not self.openai_api_key:
            return "anthropic"
        return "openai"


class SheetsSettings(BaseSettings):
    """Spreadsheet data source configuration (Google Sheets v4 REST API)."""

    api_base_url: str = Field(
        default="https://sheets.googleapis.com/v4",
        description="Base URL of the Sheets REST API",
    )
    api_key: str | None = Field(None, description="API key for public/shared sheets")
    access_token: str | None = Field(
        None, description="OAuth bearer token (takes precedence over api_key)"
    )
    default_range: str = Field(
        default="A1:Z1000",
        description="Bounded window fetched when a query does not name a range",
    )
    header_range: str = Field(
        default="A1:Z2",
        description="Window used during sync: header row plus one sample row",
    )
    timeout: int = Field(default=60, gt=0, description="Request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="SHEETS_",
        env_file=".env",
        extra="ignore",
    )


class SystemDatabaseSettings(BaseSettings):
    """System database configuration (catalog, history, feedback)."""

    url: PostgresDsn | None = Field(
        None,
        description="PostgreSQL connection URL for FinQuery's own tables",
    )

    model_config = SettingsConfigDict(
        env_prefix="SYSTEM_DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, v: str | PostgresDsn | None) -> str | PostgresDsn | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v


class PipelineSettings(BaseSettings):
    """Query pipeline behavior."""

    interpret_max_tokens: int = Field(
        default=1000, gt=0, description="Token budget for query interpretation"
    )
    insight_max_tokens: int = Field(
        default=2000, gt=0, description="Token budget for insight generation"
    )
    suggestion_max_tokens: int = Field(
        default=1000, gt=0, description="Token budget for query suggestions"
    )
    report_max_tokens: int = Field(
        default=4000, gt=0, description="Token budget for report generation"
    )
    insight_preview_rows: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Rows shown individually in the insight prompt preview",
    )
    history_limit: int = Field(
        default=50,
        ge=1,
        le=200,
        description="Default number of history entries returned per user",
    )
    default_clarification_question: str = Field(
        default="Which sheet would you like to query?",
        description="Question surfaced when the model asks for clarification without one",
    )

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
    )


class FeedbackSettings(BaseSettings):
    """Feedback learning worker configuration."""

    learning_enabled: bool = Field(
        default=True, description="Forward substantive feedback to the LLM"
    )
    learning_queue_size: int = Field(
        default=100, ge=1, le=10000, description="Pending learning tasks before discard"
    )
    learning_max_attempts: int = Field(
        default=2, ge=1, le=10, description="Attempts per learning task before discard"
    )
    learning_retry_delay_seconds: float = Field(
        default=1.0, ge=0.0, le=60.0, description="Delay between learning attempts"
    )
    learning_max_tokens: int = Field(
        default=1000, gt=0, description="Token budget for feedback learning prompts"
    )

    model_config = SettingsConfigDict(
        env_prefix="FEEDBACK_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )


class Settings(BaseSettings):
    """
    Main application settings.

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        API_HOST / API_PORT: HTTP server bind address
        LLM_*: Text-generation provider configuration (see LLMSettings)
        SHEETS_*: Spreadsheet source configuration (see SheetsSettings)
        SYSTEM_DATABASE_*: System database configuration
        PIPELINE_*: Query pipeline behavior
        FEEDBACK_*: Feedback learning worker
        LOG_*: Logging configuration
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(default="FinQuery", description="Application name")
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, gt=0, le=65535, description="API server port")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    sheets: SheetsSettings = Field(default_factory=SheetsSettings)
    system_database: SystemDatabaseSettings = Field(default_factory=SystemDatabaseSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    feedback: FeedbackSettings = Field(default_factory=FeedbackSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def model_post_init(self, __context) -> None:
        """Configure logging and record the loaded configuration."""
        self.logging.configure()
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_provider": self.llm.resolved_provider,
                "sheets_default_range": self.sheets.default_range,
                "system_database_configured": self.system_database.url is not None,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("FINQUERY_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache so the next call re-reads the environment."""
    get_settings.cache_clear()
