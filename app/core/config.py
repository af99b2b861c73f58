"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    PollerConfig,
    ServerConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.chat.alias_max).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="safespace-chat",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines instead of console output",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Server port",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key for token verification",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    rate_limit_default: str = Field(
        default="600/minute",
        description="Default per-client rate limit",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )
    db_pool_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Connection pool size",
    )
    db_max_overflow: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Connections allowed beyond the pool size",
    )

    # Chat
    alias_min: int = Field(
        default=1,
        ge=1,
        description="Smallest anonymous number",
    )
    alias_max: int = Field(
        default=999,
        ge=1,
        le=999,
        description="Largest anonymous number (labels are 3 digits)",
    )
    alias_max_attempts: int = Field(
        default=20,
        ge=20,
        le=1000,
        description="Random draws before giving up on a free alias",
    )
    alias_label_prefix: str = Field(
        default="Pengguna",
        description="Prefix of the anonymous display label",
    )
    message_max_length: int = Field(
        default=4000,
        ge=1,
        le=20000,
        description="Maximum message length in characters",
    )
    system_display_name: str = Field(
        default="Sistem",
        description="Sender label for system messages",
    )
    room_closed_text: str = Field(
        default="Ruang grup ini telah ditutup oleh pendamping.",
        description="System message appended when a group room is closed",
    )

    # Poller
    poll_interval_seconds: float = Field(
        default=1.5,
        gt=0,
        le=60,
        description="Seconds between incremental message fetches",
    )
    near_bottom_threshold: int = Field(
        default=120,
        ge=0,
        description="Pixels from the bottom that still count as following",
    )
    api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL the polling client talks to",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
            log_level=self.log_level,
            log_json=self.log_json,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT verification configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            rate_limit_default=self.rate_limit_default,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(
            url=self.database_url,
            pool_size=self.db_pool_size,
            max_overflow=self.db_max_overflow,
        )

    @cached_property
    def chat(self) -> ChatConfig:
        """Alias and message configuration."""
        return ChatConfig(
            alias_min=self.alias_min,
            alias_max=self.alias_max,
            alias_max_attempts=self.alias_max_attempts,
            alias_label_prefix=self.alias_label_prefix,
            message_max_length=self.message_max_length,
            system_display_name=self.system_display_name,
            room_closed_text=self.room_closed_text,
        )

    @cached_property
    def poller(self) -> PollerConfig:
        """Polling client configuration."""
        return PollerConfig(
            interval_seconds=self.poll_interval_seconds,
            near_bottom_threshold=self.near_bottom_threshold,
            api_base_url=self.api_base_url,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
