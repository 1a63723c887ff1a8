from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Loads keys from process env, and also from a local .env file for convenience.
    model_config = SettingsConfigDict(env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8")

    data_dir: str = "data"
    log_level: str = "INFO"

    # Keys
    gemini_api_key: str | None = None

    # Models (set via env vars as needed)
    gemini_text_model: str = "gemini-3-flash-preview"
    gemini_image_model: str = "gemini-2.5-flash-image"
    image_aspect_ratio: str = "1:1"

    # Session / history
    require_login: bool = True
    history_limit: int = 20
    history_key: str = "listing_genius_history_v2"
    session_key: str = "listing_genius_session"

    # Roughly what a browser grants local storage; None disables the check.
    storage_quota_bytes: int | None = 5_000_000


settings = Settings()
