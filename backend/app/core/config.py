from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_BACKEND_DIR = Path(__file__).resolve().parents[2]
_REPO_ROOT = _BACKEND_DIR.parent


class Settings(BaseSettings):
    app_name: str = "Photo Prompt Backend"
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    db_url: str = "sqlite:///./photo_prompt.db"
    log_level: str = "INFO"
    log_format: str = "structured"
    export_concurrency: int = 6
    export_fetch_timeout_ms: int = 25000
    export_max_files: int = 2000
    export_output_buffer_chunks: int = 32
    origin_chunk_size: int = 64 * 1024
    origin_user_agent: str = "photo-prompt-export/1.0"

    model_config = SettingsConfigDict(
        env_prefix="PP_",
        env_file=[_BACKEND_DIR / ".env", _REPO_ROOT / ".env"],
        extra="ignore",
    )


settings = Settings()
