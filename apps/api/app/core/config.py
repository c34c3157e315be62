"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Speech-to-text upload cap of the transcription endpoint.
DEFAULT_MAX_MEDIA_BYTES = 25 * 1024 * 1024


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None
    callback_secret: str

    database_url: str | None = None

    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    ai_api_key: str | None = None
    ai_base_url: str = "https://api.openai.com/v1"
    ai_analysis_model: str = "gpt-4o-mini"
    ai_transcription_model: str = "whisper-1"
    ai_timeout_seconds: float = Field(default=120.0, gt=0)

    worker_count: int = Field(default=4, ge=1)
    transcription_worker_count: int = Field(default=2, ge=1)
    max_media_bytes: int = Field(default=DEFAULT_MAX_MEDIA_BYTES, ge=1)
    transcription_poll_interval_seconds: float = Field(default=2.0, ge=0)
    transcription_timeout_seconds: float = Field(default=1800.0, gt=0)
    max_note_length: int = Field(default=100, ge=4)
    max_analysis_chars: int = Field(default=50_000, ge=1)

    model_config = SettingsConfigDict(env_prefix="ASSETPIPE_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
