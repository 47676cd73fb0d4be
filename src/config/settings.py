"""Runtime settings for the voice-command bot.

Values come from the process environment, then from a local `.env`. Due dates are UTC calendar
days end to end, so `DB_TIMEZONE` accepts nothing but UTC.
"""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.intent.llm import LLMConfig

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Typed view of the environment.

    Only the bot needs `TELEGRAM_BOT_TOKEN`; the migration CLI and tests run without it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Store
    database_url: str = Field(alias="DATABASE_URL")
    db_timezone: str = Field(default="UTC", alias="DB_TIMEZONE")
    db_pool_max_size: int = Field(default=10, ge=1, alias="DB_POOL_MAX_SIZE")
    store_timeout_s: float = Field(default=5.0, gt=0, alias="STORE_TIMEOUT_S")

    # Chat
    telegram_bot_token: str | None = Field(default=None, alias="TELEGRAM_BOT_TOKEN")

    # Optional LLM collaborator
    llm_enabled: bool = Field(default=False, alias="LLM_ENABLED")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_model: str = Field(default="gpt-4o-mini", alias="LLM_MODEL")
    llm_api_base: str = Field(default="https://api.openai.com/v1", alias="LLM_API_BASE")
    llm_timeout_s: float = Field(default=10.0, gt=0, alias="LLM_TIMEOUT_S")

    # Command behaviour
    search_result_limit: int = Field(default=10, ge=1, le=100, alias="SEARCH_RESULT_LIMIT")
    default_due_days: int = Field(default=7, ge=0, alias="DEFAULT_DUE_DAYS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("db_timezone")
    @classmethod
    def require_utc(cls, value: str) -> str:
        if value.upper() != "UTC":
            raise ValueError("DB_TIMEZONE must be UTC")
        return "UTC"

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {value!r}")
        return level

    @model_validator(mode="after")
    def llm_key_when_enabled(self) -> Settings:
        if self.llm_enabled and not self.llm_api_key:
            raise ValueError("LLM_API_KEY is required when LLM_ENABLED=true")
        return self

    def llm_config(self) -> LLMConfig | None:
        """Client configuration, or `None` while the LLM feature flag is off."""

        if not self.llm_enabled or not self.llm_api_key:
            return None
        return LLMConfig(
            api_key=self.llm_api_key,
            model=self.llm_model,
            api_base=self.llm_api_base,
            timeout_s=self.llm_timeout_s,
        )


def load_settings() -> Settings:
    """Read and validate the environment.

    Raises:
        RuntimeError: Startup configuration is missing or invalid.
    """

    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"Invalid environment configuration: {exc}") from exc
