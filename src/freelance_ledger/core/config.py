from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    cors_origins: str = "*"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./freelance_ledger.db"
    redis_url: str = "redis://localhost:6379/0"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "freelance-ledger-receipts"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    aws_region: str = "us-east-1"
    bedrock_primary_model_id: str = "us.anthropic.claude-3-5-sonnet-20241022-v2:0"
    bedrock_fallback_model_id: str = "us.anthropic.claude-3-5-haiku-20241022-v1:0"
    bedrock_timeout_seconds: float = 60.0

    receipt_max_bytes: int = 50 * 1024 * 1024
    receipt_dedup_window_hours: int = 24
    receipt_max_retries: int = 3

    init_admin_email: str | None = None
    init_admin_password: str | None = None

    access_token_exp_minutes: int = 60 * 24

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]


settings = Settings()
