"""Configuration management using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    scrapecreators_api_key: str
    scrapecreators_base_url: str = "https://api.scrapecreators.com/v1"
    upstream_timeout_seconds: float = 30.0

    comments_page_size: int = 100
    search_page_size: int = 30
    per_request_delay_ms: int = 500
    inter_video_delay_ms: int = 1000
    retry_attempts: int = 3
    retry_base_delay_ms: int = 300

    max_user_videos: int = 100
    keyword_max_pages: int = 4
    keyword_max_videos: int = 100
    default_target_comments: int = 100
    max_target_comments: int = 100_000
    ingest_deadline_seconds: float = 300.0

    bot_score_threshold: int = 4

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model_primary: str = "gpt-4o-mini"
    openai_model_fallback: str = "gpt-4o"
    summary_sample_size: int = 100

    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_file=(".env",), extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    settings = Settings()
    return settings
