from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Study Rooms API", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=True, description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:5173",
        ],
        description="List of allowed CORS origins",
    )

    database_user: str = Field(default="rooms", validation_alias=AliasChoices("DB_USER", "database_user"))
    database_password: str = Field(
        default="rooms", validation_alias=AliasChoices("DB_PASSWORD", "database_password")
    )
    database_host: str = Field(default="db", validation_alias=AliasChoices("DB_HOST", "database_host"))
    database_port: int = Field(default=3306, validation_alias=AliasChoices("DB_PORT", "database_port"))
    database_name: str = Field(default="rooms", validation_alias=AliasChoices("DB_NAME", "database_name"))
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "database_url_override"),
        description="Full SQLAlchemy URL taking precedence over the DB_* settings",
    )
    database_lock_timeout_seconds: int = Field(
        default=10,
        ge=1,
        description="How long a transaction waits for a row lock before failing",
    )

    jwt_secret_key: str = Field(default="changeme")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)

    room_code_length: int = Field(default=6, ge=4, le=16, description="Length of room join codes")
    code_generation_attempts: int = Field(
        default=10, ge=1, description="Uniqueness probes before code generation gives up"
    )
    invitation_ttl_hours: int = Field(
        default=168, ge=1, description="Lifetime of a direct room invitation"
    )
    invite_link_default_ttl_hours: int = Field(default=24, ge=1)
    invite_link_max_ttl_hours: int = Field(default=720, ge=1)
    invite_link_base_url: str = Field(
        default="/sala/convite",
        description="Prefix used to render shareable invite link URLs",
    )
    public_rooms_require_friendship: bool = Field(
        default=True,
        description="Apply the owner friendship gate to public rooms as well as private ones",
    )

    realtime_redis_url: str | None = Field(
        default=None,
        description="Redis URL used to fan out room events to other nodes",
    )
    realtime_redis_prefix: str = Field(default="studyrooms.events")
    realtime_redis_socket_timeout_seconds: float = Field(
        default=2.0, gt=0, description="Seconds a Redis publish may take before it is abandoned"
    )
    realtime_redis_connect_timeout_seconds: float = Field(default=2.0, gt=0)
    websocket_keepalive_timeout_seconds: float = Field(
        default=60.0, ge=0, description="Idle seconds before a keepalive ping is considered"
    )
    websocket_keepalive_ping_interval_seconds: float = Field(default=25.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("realtime_redis_url", mode="before")
    @classmethod
    def blank_redis_url(cls, value: str | None) -> str | None:
        if value in (None, "", Ellipsis):
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
