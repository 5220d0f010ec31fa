"""User Registry — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./user_registry.db"

    # ── Uploads ───────────────────────────────────────────
    max_upload_bytes: int = 5 * 1024 * 1024

    # ── App ───────────────────────────────────────────────
    app_name: str = "User Registry"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
