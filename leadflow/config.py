from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STANDARD_SCHEDULES: dict[str, str] = {
    "analytics": "0 2 * * *",
    "lead_scoring": "0 * * * *",
    "token_refresh": "*/30 * * * *",
    "cache_warming": "*/15 * * * *",
    "archive": "0 3 * * *",
}

REDUCED_SCHEDULES: dict[str, str] = {
    "analytics": "0 2 * * 0",
    "lead_scoring": "0 */2 * * *",
    "token_refresh": "0 * * * *",
    "cache_warming": "0 * * * *",
    "archive": "0 3 * * 0",
}


class CacheRuleConfig(BaseModel):
    path: str
    ttl: int = 300
    tags: list[str] = Field(default_factory=list)


DEFAULT_CACHE_RULES: list[CacheRuleConfig] = [
    CacheRuleConfig(path="/api/products", ttl=300, tags=["products"]),
    CacheRuleConfig(path="/api/products/{product_id}", ttl=300, tags=["products"]),
    CacheRuleConfig(path="/api/messages", ttl=60, tags=["messages"]),
    CacheRuleConfig(path="/api/messages/{message_id}", ttl=300, tags=["messages"]),
    CacheRuleConfig(path="/api/leads", ttl=60, tags=["leads"]),
    CacheRuleConfig(path="/api/config", ttl=3600, tags=["config"]),
    CacheRuleConfig(path="/api/analytics/daily", ttl=300, tags=["analytics"]),
]


class CacheSettings(BaseModel):
    operation_timeout: float = 3.0
    tag_ttl: int = 86400
    ai_response_ttl: int = 86400
    product_catalog_ttl: int = 300
    template_ttl: int = 3600
    product_sweep_interval: int = 600
    template_sweep_interval: int = 1800
    query_cache_max_age: int = 300
    memory_max_size: int = 10_000
    rules: list[CacheRuleConfig] = Field(default_factory=lambda: list(DEFAULT_CACHE_RULES))

    @field_validator("tag_ttl")
    @classmethod
    def validate_tag_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("tag_ttl must be positive")
        return value


class JobSettings(BaseModel):
    enabled: bool = True
    timezone: str = "UTC"
    schedules: dict[str, str] = Field(default_factory=dict)
    lead_scoring_batch_size: int = 100
    campaign_archive_limit: int = 100
    message_archive_limit: int = 500
    token_refresh_window_seconds: int = 3600


class PaginationSettings(BaseModel):
    default_limit: int | None = None
    max_limit: int | None = None


class AppConfig(BaseModel):
    cache: CacheSettings = Field(default_factory=CacheSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    pagination: PaginationSettings = Field(default_factory=PaginationSettings)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEADFLOW_", extra="ignore", populate_by_name=True)

    app_name: str = "Leadflow Core API"
    app_env: str = "dev"
    log_level: str = "INFO"
    config_path: str = "config.yaml"
    identity_header: str = "x-user-id"

    upstash_redis_rest_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEADFLOW_UPSTASH_REDIS_REST_URL", "UPSTASH_REDIS_REST_URL"),
    )
    upstash_redis_rest_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEADFLOW_UPSTASH_REDIS_REST_TOKEN", "UPSTASH_REDIS_REST_TOKEN"),
    )
    redis_url: str | None = Field(default=None, validation_alias=AliasChoices("LEADFLOW_REDIS_URL", "REDIS_URL"))
    use_memory_cache: bool = False

    parse_application_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEADFLOW_PARSE_APPLICATION_ID", "PARSE_APPLICATION_ID"),
    )
    parse_rest_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEADFLOW_PARSE_REST_API_KEY", "PARSE_REST_API_KEY"),
    )
    parse_master_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEADFLOW_PARSE_MASTER_KEY", "PARSE_MASTER_KEY"),
    )
    parse_server_url: str = Field(
        default="https://parseapi.back4app.com",
        validation_alias=AliasChoices("LEADFLOW_PARSE_SERVER_URL", "PARSE_SERVER_URL"),
    )

    reduced_job_frequency: bool = False
    azure_free_tier: bool = Field(default=False, validation_alias=AliasChoices("AZURE_FREE_TIER"))
    website_sku: str | None = Field(default=None, validation_alias=AliasChoices("WEBSITE_SKU"))
    scheduled_jobs_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("LEADFLOW_SCHEDULED_JOBS_ENABLED", "ENABLE_SCHEDULED_JOBS"),
    )

    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str | None = None
    llm_model: str = "gpt-4o-mini"

    microsoft_client_id: str | None = None
    microsoft_client_secret: str | None = None
    google_client_id: str | None = None
    google_client_secret: str | None = None

    @property
    def reduced_profile(self) -> bool:
        return self.reduced_job_frequency or self.azure_free_tier or self.website_sku == "Free"

    @property
    def parse_configured(self) -> bool:
        return bool(self.parse_application_id and (self.parse_rest_api_key or self.parse_master_key))


def resolve_schedules(settings: Settings, jobs: JobSettings) -> dict[str, str]:
    base = REDUCED_SCHEDULES if settings.reduced_profile else STANDARD_SCHEDULES
    merged = dict(base)
    for name, expression in jobs.schedules.items():
        if name not in merged:
            raise ValueError(f"Unknown job in schedules: {name}")
        merged[name] = expression
    return merged


def resolve_pagination(settings: Settings, pagination: PaginationSettings) -> tuple[int, int]:
    default_limit = pagination.default_limit or (25 if settings.reduced_profile else 50)
    max_limit = pagination.max_limit or (100 if settings.reduced_profile else 200)
    return default_limit, max(max_limit, default_limit)


def _resolve_env_token(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("os.environ/"):
        env_name = value.split("/", 1)[1]
        return os.getenv(env_name)
    if isinstance(value, dict):
        return {k: _resolve_env_token(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_token(v) for v in value]
    return value


def load_app_config(path: str | Path) -> AppConfig:
    cfg_path = Path(path)
    if not cfg_path.exists():
        return AppConfig()

    data = yaml.safe_load(cfg_path.read_text()) or {}
    return AppConfig.model_validate(_resolve_env_token(data))


@lru_cache
def get_settings() -> Settings:
    return Settings()
