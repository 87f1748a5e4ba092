from typing import Literal

from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Remote key-value store (Redis protocol, Upstash compatible)
    kv_enabled: bool = False
    kv_url: str | None = None
    kv_namespace: str = "exhub"
    kv_socket_timeout_seconds: float = 5.0

    # Local JSON mirror of the legacy stores
    data_dir: str = "./data"

    # Key tokens
    paid_token_prefix: str = "EXPAID"
    free_token_prefix: str = "EXFREE"
    token_mint_attempts: int = 10

    # Which exec entries a user delete removes
    session_match_policy: Literal["either", "both", "token"] = "either"

    # Admin access
    admin_api_key: str | None = None
    rate_limit_admin: str = "30/minute"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Discord webhooks
    discord_alerts_webhook_url: str | None = None
    discord_audit_webhook_url: str | None = None

    # CORS (admin dashboard)
    cors_origins: list[str] | str = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("paid_token_prefix", "free_token_prefix")
    @classmethod
    def normalize_token_prefix(cls, v: str) -> str:
        v = v.strip().strip("-")
        if not v:
            raise ValueError("Token prefix cannot be empty")
        return v


settings = Settings()
