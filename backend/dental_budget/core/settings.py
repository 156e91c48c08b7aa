from __future__ import annotations

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("dental_budget.config")


class Settings(BaseSettings):
    app_env: str = "development"
    store_base_url: str = "http://localhost:8081/api"
    store_timeout_seconds: float = Field(default=10.0, gt=0)
    store_token: str | None = None
    catalog_page_size: int = Field(default=200, ge=1)
    catalog_max_pages: int = Field(default=25, ge=1)
    currency_symbol: str = "R$"
    decimal_separator: str = ","
    thousands_separator: str = "."
    block_on_stale_references: bool = False
    budget_notes_template: str = "Generated from dental chart. Items: {count}"

    model_config = SettingsConfigDict(
        env_prefix="DENTAL_BUDGET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("store_timeout_seconds", "catalog_page_size", "catalog_max_pages", mode="before")
    @classmethod
    def _coerce_empty_numbers(cls, value, info):
        if value in {"", None}:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("store_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")


def _is_production(app_env: str) -> bool:
    return app_env.strip().lower() in {"prod", "production"}


def validate_settings(settings: Settings) -> None:
    if settings.decimal_separator == settings.thousands_separator:
        raise RuntimeError("Config validation failed: decimal and thousands separators must differ")

    warnings: list[str] = []
    if _is_production(settings.app_env) and not settings.store_base_url.startswith("https://"):
        warnings.append("STORE_BASE_URL is not https in production")
    if _is_production(settings.app_env) and not settings.store_token:
        warnings.append("STORE_TOKEN is not set in production")

    for warning in warnings:
        logger.warning("Config warning: %s", warning)


settings = Settings()
