# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are loaded from environment variables (and an optional ``.env``
file) with development defaults. Domain configuration for the tutor
(persona, credit rules, grade expectations) lives in YAML and is handled
by ``src.core.config.tutor``; this module only covers infrastructure.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL configuration for the learning store and job records.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        auto_migrate: Apply pending migrations when the API starts.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "adeline"
    password: SecretStr = SecretStr("adeline_db_password")
    host: str = "adeline-db"
    port: int = 5432
    database: str = "adeline"
    pool_size: int = 10
    max_overflow: int = 20
    auto_migrate: bool = True

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def sync_url(self) -> str:
        """Build the sync database URL for migrations."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class RedisSettings(BaseSettings):
    """Redis configuration for the semantic cache, job notifications and broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
        max_connections: Maximum connection pool size.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "adeline-redis"
    port: int = 6379
    password: SecretStr = SecretStr("adeline_redis_password")
    database: int = 0
    max_connections: int = 50

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class QdrantSettings(BaseSettings):
    """Qdrant configuration for the investigation document store.

    Attributes:
        host: Qdrant server host.
        http_port: HTTP API port.
        grpc_port: gRPC API port.
        api_key: Optional API key for authentication.
        prefer_grpc: Whether to prefer gRPC over HTTP.
        timeout: Request timeout in seconds.
        documents_collection: Collection holding curated source documents.
    """

    model_config = SettingsConfigDict(
        env_prefix="QDRANT_",
        extra="ignore",
    )

    host: str = "adeline-qdrant"
    http_port: int = 6333
    grpc_port: int = 6334
    api_key: SecretStr | None = None
    prefer_grpc: bool = True
    timeout: float = 30.0
    documents_collection: str = "hippocampus_documents"


class LLMSettings(BaseSettings):
    """LLM provider credentials for LiteLLM.

    Model selection itself comes from the tutor configuration; these
    settings only hold provider endpoints and keys.

    Attributes:
        ollama_base_url: Base URL for an Ollama server.
        openai_api_key: OpenAI API key.
        anthropic_api_key: Anthropic API key.
        google_api_key: Google AI API key.
        transcription_model: Model used for voice memo transcription.
        request_timeout: Request timeout in seconds.
        max_retries: Maximum retry attempts handled by LiteLLM.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    ollama_base_url: str = Field(
        default="http://localhost:11434",
        validation_alias="OLLAMA_BASE_URL",
    )
    openai_api_key: SecretStr | None = Field(
        default=None,
        validation_alias="OPENAI_API_KEY",
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        validation_alias="ANTHROPIC_API_KEY",
    )
    google_api_key: SecretStr | None = Field(
        default=None,
        validation_alias="GOOGLE_API_KEY",
    )
    transcription_model: str = Field(
        default="whisper-1",
        validation_alias="TRANSCRIPTION_MODEL",
    )

    request_timeout: float = 60.0
    max_retries: int = 2

    def api_key_for(self, model: str) -> str | None:
        """Resolve the API key for a LiteLLM model identifier.

        Args:
            model: Model identifier, optionally provider-prefixed.

        Returns:
            The matching API key, or None to let LiteLLM use its env lookup.
        """
        lowered = model.lower()
        if "claude" in lowered or lowered.startswith("anthropic/"):
            secret = self.anthropic_api_key
        elif "gemini" in lowered or lowered.startswith("google/"):
            secret = self.google_api_key
        elif "gpt" in lowered or "whisper" in lowered or "text-embedding" in lowered:
            secret = self.openai_api_key
        else:
            secret = None
        return secret.get_secret_value() if secret else None


class EmbeddingSettings(BaseSettings):
    """Embedding model configuration.

    Attributes:
        model: Model name in LiteLLM format.
        dimension: Vector dimension (must match model output).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        extra="ignore",
    )

    model: str = "text-embedding-3-small"
    dimension: int = 1536


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
        job_batch_size: Pending jobs processed concurrently per trigger.
        job_retention_days: Age after which finished jobs are deleted.
        poll_interval_seconds: How often the scheduler enqueues a pending-job sweep.
        cleanup_cron: Cron expression for the finished-job cleanup.
        process_secret: Bearer token required by the manual job sweep endpoint;
            the endpoint is open when unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4
    job_batch_size: int = 5
    job_retention_days: int = 7
    poll_interval_seconds: int = 10
    cleanup_cron: str = "0 3 * * *"
    process_secret: SecretStr | None = None


class PipelineSettings(BaseSettings):
    """Learning pipeline configuration.

    Attributes:
        tutor_config_path: YAML file with persona, rules and models.
        tutor_config_override_path: Optional YAML merged over the base file.
        semantic_cache_enabled: Whether run_sync consults the semantic cache.
        mastery_history_limit: Entries kept in each mastery history log.
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        extra="ignore",
    )

    tutor_config_path: Path = Path("config/tutor.yaml")
    tutor_config_override_path: Path | None = None
    semantic_cache_enabled: bool = True
    mastery_history_limit: int = 50


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        cors_origins: Comma-separated list of allowed origins.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 34000
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Main application settings.

    Attributes:
        environment: Deployment environment.
        debug: Enable debug mode.
        log_level: Logging level.
        database: PostgreSQL settings.
        redis: Redis settings.
        qdrant: Qdrant settings.
        llm: LLM provider settings.
        embedding: Embedding model settings.
        worker: Background worker settings.
        pipeline: Learning pipeline settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with default credentials.
        """
        if self.environment == "production":
            if self.database.password.get_secret_value() == "adeline_db_password":
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD environment variable."
                )
            if self.debug:
                raise ValueError("DEBUG must be disabled in production.")
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment, e.g. in tests.
    """
    get_settings.cache_clear()
