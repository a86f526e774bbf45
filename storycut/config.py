import json
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Storycut API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # CORS - comma-separated, or a JSON array
    cors_origins_raw: str = "http://localhost:3000,http://localhost:5173"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        v = self.cors_origins_raw.strip()
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Render infrastructure (compute provider region)
    render_region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices("render_region", "remotion_aws_region"),
    )
    # Companion service that wraps the provider's deploy/render SDK
    render_service_url: str = "http://localhost:3100"
    render_service_timeout_s: float = 60.0

    # Compute function deployment
    render_function_memory_mb: int = 2048
    render_function_timeout_s: int = 120
    render_function_architecture: Literal["arm64", "x86_64"] = "arm64"

    # Bundle ("site") deployment
    render_site_name: str = "video-editor-site"
    render_entry_point: str = "remotion/root.tsx"
    render_composition: str = "VideoWithCaptions"

    # Render defaults
    render_fps: int = 30
    render_width: int = 1080
    render_height: int = 1920
    render_poll_interval_s: float = 2.5

    # Bootstrap retry policy (get-or-create steps only)
    bootstrap_max_attempts: int = 3
    bootstrap_backoff_s: float = 1.0

    # Storage
    use_local_storage: bool = True  # Set to False in production
    local_storage_path: str = "/tmp/storycut-storage"
    public_base_url: str = "http://localhost:8000"
    gcs_bucket_name: str = "storycut-media"
    gcs_project_id: str = ""
    uploads_dir: str = "_uploads"
    media_fetch_timeout_s: float = 60.0

    # FFmpeg / audio analysis
    ffmpeg_path: str = "ffmpeg"
    audio_decode_sample_rate: int = 22050
    audio_decode_timeout_s: float = 60.0

    # Audio visualization cache
    audio_cache_max_entries: int = 10
    audio_cache_ttl_s: float = 300.0
    audio_frame_cache_size: int = 100
    audio_visualization_samples: int = 512

    # Transcription (OpenAI Whisper)
    openai_api_key: str = ""
    transcription_model: str = "whisper-1"
    transcription_timeout_s: float = 300.0


@lru_cache
def get_settings() -> Settings:
    return Settings()
