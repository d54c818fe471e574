from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_INDEX_HTML = Path(__file__).resolve().parent / "index.html"


class AppSettings(BaseSettings):
    """Application configuration loaded from environment or .env."""

    app_name: str = Field(default="Vimeo Transcriber", alias="APP_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    index_html_path: Path = Field(default=DEFAULT_INDEX_HTML, alias="INDEX_HTML_PATH")

    transcription_provider: str = Field(default="amazon", alias="TRANSCRIPTION_PROVIDER")
    transcription_language: str = Field(default="es", alias="TRANSCRIPTION_LANGUAGE")
    transcription_response_format: str = Field(
        default="text", alias="TRANSCRIPTION_RESPONSE_FORMAT"
    )

    aws_region: str = Field(default="eu-west-1", alias="AWS_REGION")
    ffmpeg_path: str = Field(default="ffmpeg", alias="FFMPEG_PATH")

    openai_api_key: Optional[SecretStr] = Field(default=None, alias="OPENAI_API_KEY")
    whisper_model: str = Field(default="whisper-1", alias="WHISPER_MODEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()
