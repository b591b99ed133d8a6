"""Application configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_path: Path = Path("data/pagebase.db")
    debug: bool = False
    app_title: str = "Pagebase"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8080
    pool_timeout: float = 30.0

    model_config = SettingsConfigDict(
        env_prefix="PAGEBASE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
