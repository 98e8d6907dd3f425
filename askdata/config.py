"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from askdata.config import get_settings

    settings = get_settings()
    print(settings.llm.openai_model)
    print(settings.chat.max_table_rows)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, PostgresDsn, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    default_provider: Literal["openai"] = Field(
        default="openai", description="Default LLM provider"
    )
    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_base_url: str | None = Field(
        None, description="Optional OpenAI-compatible base URL"
    )
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI chat model")

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
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=30,
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


class CoreDatabaseSettings(BaseSettings):
    """Core database configuration (conversations, messages, usage, audit)."""

    url: PostgresDsn | None = Field(
        None,
        description="Core PostgreSQL connection URL",
    )
    pool_min_size: int = Field(default=1, ge=1, le=20, description="Minimum pool size")
    pool_max_size: int = Field(default=10, ge=1, le=100, description="Maximum pool size")

    model_config = SettingsConfigDict(
        env_prefix="CORE_DATABASE_",
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

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "CoreDatabaseSettings":
        if self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"pool_min_size ({self.pool_min_size}) must not exceed "
                f"pool_max_size ({self.pool_max_size})"
            )
        return self


class TenantDatabaseSettings(BaseSettings):
    """Per-tenant data warehouse pool configuration."""

    pool_size: int = Field(
        default=5,
        gt=0,
        le=20,
        description="Connection pool size per tenant",
    )
    statement_timeout: int = Field(
        default=30,
        gt=0,
        description="Statement timeout in seconds for tenant queries",
    )
    default_port: int = Field(
        default=5432,
        gt=0,
        le=65535,
        description="Port used when a tenant record omits one",
    )

    model_config = SettingsConfigDict(
        env_prefix="TENANT_DATABASE_",
        env_file=".env",
        extra="ignore",
    )


class ChromaSettings(BaseSettings):
    """Chroma vector store configuration."""

    persist_dir: Path = Field(
        default=Path("./chroma_data"),
        description="Directory for Chroma vector store persistence",
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model",
    )
    top_k: int = Field(
        default=5,
        gt=0,
        le=20,
        description="Number of snippets retrieved per question",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHROMA_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("persist_dir")
    @classmethod
    def validate_persist_dir(cls, v: Path) -> Path:
        """Resolve persist directory to an absolute path."""
        return v.resolve()


class ChatSettings(BaseSettings):
    """Chat turn behavior: table limits, summaries and chart sampling."""

    max_table_rows: int = Field(
        default=20,
        gt=0,
        le=1000,
        description="Maximum rows rendered inline and requested from the translator",
    )
    csv_export_row_threshold: int = Field(
        default=21,
        gt=0,
        description="Row count at or above which a CSV download is attached",
    )
    summary_message_interval: int = Field(
        default=12,
        gt=0,
        description="Refresh the conversation summary every N messages",
    )
    min_messages_for_summary: int = Field(
        default=2,
        ge=0,
        description="Minimum messages before the conversation summary is refreshed",
    )
    summary_sample_rows: int = Field(
        default=50,
        gt=0,
        description="Rows sent to the summarizer",
    )
    chart_max_points: int = Field(
        default=200,
        gt=0,
        description="Maximum points in a chart series",
    )
    chart_sample_rows: int = Field(
        default=50,
        gt=0,
        description="Rows sent to the chart metric picker",
    )
    recent_message_pairs: int = Field(
        default=2,
        ge=0,
        le=20,
        description="Question/answer pairs carried into the translator context",
    )
    rag_snippet_chars: int = Field(
        default=500,
        gt=0,
        description="Maximum characters per retrieved snippet in the payload",
    )
    answer_summary_chars: int = Field(
        default=500,
        gt=0,
        description="Maximum characters of the answer kept in query logs",
    )
    schema_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="Schema description cache TTL (0 disables caching)",
    )
    conversation_busy_policy: Literal["reject", "serialize"] = Field(
        default="reject",
        description="What to do when a turn arrives while another is in flight",
    )

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        extra="ignore",
    )


class AuthSettings(BaseSettings):
    """Identity token configuration."""

    token_key: str | None = Field(
        default=None,
        description="Fernet key used to verify identity tokens",
    )
    token_ttl_seconds: int = Field(
        default=86400,
        gt=0,
        description="Maximum identity token age in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
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

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, core_database, tenant_database,
    chroma, chat, auth, logging).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        API_HOST: API server host
        API_PORT: API server port
        CORS_ORIGINS: Comma-separated list of allowed origins
        LLM_*: LLM provider configuration (see LLMSettings)
        CORE_DATABASE_*: Core database configuration
        TENANT_DATABASE_*: Tenant warehouse pool configuration
        CHROMA_*: Vector store configuration
        CHAT_*: Chat turn behavior
        AUTH_*: Identity token configuration
        LOG_*: Logging configuration

    Example:
        >>> settings = get_settings()
        >>> settings.chat.summary_message_interval
        12
        >>> settings.is_production
        False
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="AskData",
        description="Application name",
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        gt=0,
        le=65535,
        description="API server port",
    )
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    llm: LLMSettings = Field(default_factory=LLMSettings)
    core_database: CoreDatabaseSettings = Field(default_factory=CoreDatabaseSettings)
    tenant_database: TenantDatabaseSettings = Field(default_factory=TenantDatabaseSettings)
    chroma: ChromaSettings = Field(default_factory=ChromaSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "llm_model": self.llm.openai_model,
                "summary_interval": self.chat.summary_message_interval,
                "busy_policy": self.chat.conversation_busy_policy,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("ASKDATA_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
