"""
Application settings
Read from environment variables and an optional .env file
"""
import logging
from typing import List
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Hotel Operations Access Control"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./access_control.db"

    # JWT
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Permission evaluation
    PERMISSION_CACHE_TTL: int = 3600          # PermissionCache rows, seconds
    PERMISSION_MAX_CACHE_SIZE: int = 10000    # in-process entries
    PERMISSION_MEMORY_CACHE_TTL: int = 300    # in-process entries, seconds

    # Permission system bootstrap
    SKIP_PERMISSION_INIT: bool = False
    FORCE_PERMISSION_SYSTEM: bool = False
    PERMISSION_TABLE_CHECK_RETRIES: int = 3
    PERMISSION_TABLE_CHECK_DELAY: float = 0.5

    # CORS
    ALLOW_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()


def setup_logging(level: str = "INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
