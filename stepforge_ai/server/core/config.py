"""
Configuration Settings.

This module defines the application configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from stepforge_ai.agent_core.schemas.config import EngineConfig

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class CORSConfig(BaseModel):
    """CORS configuration."""

    origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS", description="Allowed CORS origins (use * for all)")
    allow_credentials: bool = Field(
        default=True, alias="CORS_ALLOW_CREDENTIALS", description="Allow credentials in CORS requests"
    )
    allow_methods: list[str] = Field(
        default=["*"], alias="CORS_ALLOW_METHODS", description="Allowed HTTP methods (use * for all)"
    )
    allow_headers: list[str] = Field(
        default=["*"], alias="CORS_ALLOW_HEADERS", description="Allowed HTTP headers (use * for all)"
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Application settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Server Configuration
    # =====================================================================
    server_host: str = Field(
        default="0.0.0.0",
        description="stepforge-ai server host address to bind to",
        alias="STEPFORGE_AI_SERVER_HOST",
    )
    server_port: int = Field(
        default=8000,
        description="stepforge-ai server port number",
        alias="STEPFORGE_AI_SERVER_PORT",
    )

    # =====================================================================
    # Logging Configuration
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="STEPFORGE_AI_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log line format (simple, detailed, json)",
        alias="LOG_FORMAT",
    )
    log_file_dir: str = Field(default="logs", description="Directory of the log file", alias="LOG_FILE_DIR")
    enable_file_logging: bool = Field(
        default=False, description="Also write logs to a file", alias="ENABLE_FILE_LOGGING"
    )

    # =====================================================================
    # Persistence Configuration
    # =====================================================================
    database_url: Optional[str] = Field(
        default=None,
        description="Async SQLAlchemy URL; in-memory stores are used when unset",
        alias="STEPFORGE_AI_DATABASE_URL",
    )

    # =====================================================================
    # Reasoning Configuration
    # =====================================================================
    model_name: str = Field(
        default="openai:gpt-4o",
        description="Pydantic AI model identifier used by the reasoning client",
        alias="STEPFORGE_AI_MODEL",
    )

    # =====================================================================
    # Engine Tunables
    # =====================================================================
    max_scheduler_loops: int = Field(default=20, alias="STEPFORGE_AI_MAX_SCHEDULER_LOOPS")
    max_step_iterations: int = Field(default=5, alias="STEPFORGE_AI_MAX_STEP_ITERATIONS")
    max_validation_retries: int = Field(default=2, alias="STEPFORGE_AI_MAX_VALIDATION_RETRIES")
    delegation_poll_interval_seconds: float = Field(default=2.0, alias="STEPFORGE_AI_DELEGATION_POLL_INTERVAL")
    delegation_timeout_seconds: float = Field(default=30.0, alias="STEPFORGE_AI_DELEGATION_TIMEOUT")
    step_output_max_bytes: int = Field(default=4096, alias="STEPFORGE_AI_STEP_OUTPUT_MAX_BYTES")
    history_limit: int = Field(default=20, alias="STEPFORGE_AI_HISTORY_LIMIT")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def cors(self) -> CORSConfig:
        """Get CORS configuration from environment variables."""
        return CORSConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def engine(self) -> "EngineConfig":
        """Get the engine tunables as an ``EngineConfig``."""
        from stepforge_ai.agent_core.schemas.config import EngineConfig

        return EngineConfig(
            max_scheduler_loops=self.max_scheduler_loops,
            max_step_iterations=self.max_step_iterations,
            max_validation_retries=self.max_validation_retries,
            delegation_poll_interval_seconds=self.delegation_poll_interval_seconds,
            delegation_timeout_seconds=self.delegation_timeout_seconds,
            step_output_max_bytes=self.step_output_max_bytes,
            history_limit=self.history_limit,
        )


settings = Settings()
