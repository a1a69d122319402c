from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Strategy Pipeline"
    debug: bool = False

    # Anthropic
    anthropic_api_key: str = ""

    # Generation client
    generation_model: str = "claude-sonnet-4-20250514"
    generation_max_tokens: int = 4096
    generation_timeout_seconds: float = 60.0

    # Prompt language and rendered headings
    output_language: Literal["ja", "en"] = "ja"

    # Concept proposals beyond this count are dropped from the artifact
    max_concept_candidates: int = Field(3, ge=1)

    # Caller-level retry of a whole pipeline invocation (1 = run once)
    pipeline_retry_attempts: int = 1
    pipeline_retry_wait_seconds: float = 2.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
