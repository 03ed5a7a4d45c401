"""
Centralized application configuration.
"""
from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Lead Import Pipeline"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./data/leads.db"

    # Import pipeline
    sample_window_size: int = 5  # Data rows read for preview/validation
    allowed_import_extensions: List[str] = [".csv", ".xls"]

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get the cached application settings."""
    return Settings()

