from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_vision_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.7
    openai_max_tokens: int = 5000
    data_dir: str = "./data"
    max_photo_size_bytes: int = 20 * 1024 * 1024  # 20MB
    max_concurrent_photos: int = 3
    stale_processing_minutes: int = 30
    cleanup_interval_minutes: int = 60
    geocoder_user_agent: str = "TripStory/1.0"
    geocoder_timeout_seconds: float = 10.0
    vision_min_confidence: float = 0.3
    subscriber_queue_size: int = 100
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
