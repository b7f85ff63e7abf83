"""
Application configuration
Loaded from environment variables via pydantic-settings
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/app.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    enable_docs: bool = False  # API docs are off by default in production

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Unlock code policy
    unlock_code_validity_days: int = 7
    unlock_code_max_attempts: int = 10

    # Reconciliation of codes missing their transaction back-link
    reconcile_interval_minutes: int = 60

    # Redemption rate limiting
    redeem_rate_limit_window: int = 60  # seconds
    redeem_rate_limit_attempts: int = 10

    # Admin (HTTP Basic Auth)
    admin_username: str = "admin"
    admin_password: str = "admin888"  # change in production!
    admin_id: str = "admin"
    admin_role: str = "admin"

    @property
    def cors_origins_list(self) -> List[str]:
        """Split the comma separated CORS origins into a list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton"""
    return Settings()
