# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./breakroom_supply.db"

    # Public backend URL, baked into every QR scan link
    API_URL: str = "http://localhost:4000"

    # Token verification for the external auth service
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    AUDIT_RETENTION_DAYS: int = 90
    SCAN_HISTORY_DISPLAY_LIMIT: int = 50
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file: ClassVar[str] = str(env_path)

    @property
    def database_url(self) -> str:
        # SQLAlchemy requires postgresql:// rather than the legacy postgres:// scheme
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL
