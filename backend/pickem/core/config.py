from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode and SQL echo")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/pickem.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: AnyUrl | str | None = Field(
        default=None,
        description="Postgres connection string used when ENVIRONMENT=production",
    )
    football_api_base_url: AnyUrl | str = Field(
        default="https://v3.football.api-sports.io",
        description="Base URL of the fixture feed",
    )
    football_api_key: str | None = Field(
        default=None,
        description="API key sent as x-apisports-key to the fixture feed",
    )
    football_api_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to fixture feed requests",
        gt=0,
    )
    sync_tournaments: list[dict[str, Any]] = Field(
        default_factory=lambda: [
            {"api_id": 2, "name": "UEFA Champions League"},
            {"api_id": 3, "name": "UEFA Europa League"},
        ],
        description="Tournaments tracked by the sync job as {api_id, name} entries",
    )
    sync_season: int | None = Field(
        default=None,
        description="Season requested from the feed; defaults to the current UTC year",
    )
    sync_live_batch_size: int = Field(
        default=20,
        description="Maximum number of fixture ids sent in one live-mode request",
        ge=1,
    )
    api_tokens: dict[str, str] | str = Field(
        default_factory=dict,
        description="Bearer token to user id mapping (JSON object or comma-separated token:user pairs)",
    )
    admin_user_ids: list[str] | str = Field(
        default_factory=list,
        description="Users allowed to trigger settlement; empty means any authenticated user",
    )
    settlement_summary_dir: str | None = Field(
        default=None,
        description="Directory where the settlement job writes JSON summaries (blank disables)",
    )

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("sync_tournaments", mode="after")
    @classmethod
    def _validate_tournaments(cls, value: list[dict[str, Any]]) -> list[dict[str, Any]]:
        normalized: list[dict[str, Any]] = []
        for entry in value:
            if "api_id" not in entry or "name" not in entry:
                raise ValueError("SYNC_TOURNAMENTS entries require api_id and name")
            try:
                api_id = int(entry["api_id"])
            except (TypeError, ValueError) as exc:
                raise ValueError("SYNC_TOURNAMENTS api_id must be an integer") from exc
            normalized.append({"api_id": api_id, "name": str(entry["name"])})
        return normalized

    @field_validator("api_tokens", mode="after")
    @classmethod
    def _parse_api_tokens(cls, value: Any) -> dict[str, str]:
        if value in (None, "", {}):
            return {}
        if isinstance(value, dict):
            return {str(token): str(user_id) for token, user_id in value.items()}
        if isinstance(value, str):
            tokens: dict[str, str] = {}
            for pair in (part.strip() for part in value.split(",")):
                if not pair:
                    continue
                token, sep, user_id = pair.partition(":")
                if not sep or not token.strip() or not user_id.strip():
                    raise ValueError("API_TOKENS entries must be formatted as token:user_id")
                tokens[token.strip()] = user_id.strip()
            return tokens
        raise ValueError("API_TOKENS must be a mapping or comma-separated token:user_id pairs")

    @field_validator("admin_user_ids", mode="after")
    @classmethod
    def _parse_admin_user_ids(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item for item in (part.strip() for part in value.split(",")) if item]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError("ADMIN_USER_IDS must be a list or comma-separated string")

    @property
    def resolved_database_url(self) -> str:
        if self.environment.lower() == "production":
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
