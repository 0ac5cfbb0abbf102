"""
FireWatch Reports - Configuration Management
Centralized configuration using pydantic-settings.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: List[str] = ["*"]

    # Database
    database_url: str = "sqlite:///./firewatch_reports.db"
    db_pool_size: int = 5
    db_echo: bool = False

    # Groq vision classifier (OpenAI-compatible chat completions)
    groq_api_key: Optional[str] = None
    groq_api_url: str = "https://api.groq.com/openai/v1/chat/completions"
    groq_vision_model: str = "meta-llama/llama-4-maverick-17b-128e-instruct"
    verification_timeout_seconds: float = 30.0

    # Cloudinary (image storage)
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    upload_timeout_seconds: float = 45.0
    upload_folder_prefix: str = "firewatch/reports"
    max_image_bytes: int = 10 * 1024 * 1024

    # Firebase (identity tokens)
    firebase_credentials_path: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[str] = None

    # Paging
    list_default_limit: int = 50
    list_max_limit: int = 200
    mine_default_limit: int = 20
    mine_max_limit: int = 50

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
