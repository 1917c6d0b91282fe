from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str) -> list[str]:
    return [x.strip().lower() for x in (raw or "").split(",") if x.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="Secure Asset API", alias="APP_NAME")
    app_env: Literal["dev", "staging", "prod"] = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=3000, alias="APP_PORT", validation_alias=AliasChoices("APP_PORT", "PORT"))
    api_prefix: str = Field(default="/api/v1", alias="API_PREFIX")
    app_key: str = Field(default="", alias="APP_KEY")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    store_backend: Literal["sql", "json", "firebase"] = Field(default="sql", alias="STORE_BACKEND")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/app.sqlite",
        alias="DATABASE_URL",
        validation_alias=AliasChoices("DATABASE_URL", "SQLITE_FILE"),
    )
    json_store_file: str = Field(default="./data/assets.json", alias="JSON_STORE_FILE")

    firebase_service_account_json: str = Field(default="", alias="FIREBASE_SERVICE_ACCOUNT_JSON")
    firebase_service_account_file: str = Field(default="", alias="FIREBASE_SERVICE_ACCOUNT_FILE")
    firebase_database_url: str = Field(default="", alias="FIREBASE_DATABASE_URL")
    firebase_root_path: str = Field(default="/", alias="FIREBASE_ROOT_PATH")

    github_token: str = Field(default="", alias="GITHUB_TOKEN")
    github_api_url: str = Field(default="https://api.github.com", alias="GITHUB_API_URL")
    github_timeout_seconds: float = Field(default=20.0, alias="GITHUB_TIMEOUT_SECONDS")
    github_owner: str = Field(default="", alias="ASSET_GH_OWNER")
    github_repo: str = Field(default="", alias="ASSET_GH_REPO")
    default_branch: str = Field(default="main", alias="ASSET_DEFAULT_BRANCH")
    cdn_base: str = Field(default="https://cdn.jsdelivr.net/gh", alias="ASSET_CDN_BASE")

    asset_allowed_ext: str = Field(default="", alias="ASSET_ALLOWED_EXT")
    asset_remote_allowlist: str = Field(default="", alias="ASSET_REMOTE_ALLOWLIST")
    max_upload_size_mb: int = Field(default=25, alias="MAX_UPLOAD_SIZE_MB")

    redis_url: str = Field(default="", alias="REDIS_URL")
    rate_limit_per_minute: int = Field(default=120, alias="RATE_LIMIT_PER_MINUTE")
    allowed_cors_origins: str = Field(default="*", alias="ALLOWED_CORS_ORIGINS")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    @property
    def cors_origins(self) -> list[str]:
        return [x.strip() for x in self.allowed_cors_origins.split(",") if x.strip()]

    @property
    def allowed_extensions(self) -> list[str]:
        return [x.lstrip(".") for x in _split_csv(self.asset_allowed_ext)]

    @property
    def remote_allowlist(self) -> list[str]:
        return _split_csv(self.asset_remote_allowlist)

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_size_mb) * 1024 * 1024

    @property
    def github_repo_full_name(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"

    @property
    def database_url_async(self) -> str:
        url = str(self.database_url or "").strip()
        if "://" not in url:
            # SQLITE_FILE style: a bare filesystem path
            return f"sqlite+aiosqlite:///{url}"
        if url.startswith("sqlite://"):
            return "sqlite+aiosqlite://" + url[len("sqlite://") :]
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        if url.startswith("postgresql://"):
            return "postgresql+asyncpg://" + url[len("postgresql://") :]
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
