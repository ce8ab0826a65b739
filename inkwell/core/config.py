from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Inkwell"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"  # "development", "test" or "production"

    SECRET_KEY: str = ""  # Must be set via environment variable in production
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    DATABASE_URL: str = "sqlite:///./inkwell.db"

    # Featured images
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024  # 5MB

    # Pagination
    DEFAULT_PAGE_SIZE: int = 6
    MAX_PAGE_SIZE: int = 50

    # Login throttling per client address
    LOGIN_RATE_LIMIT: int = 5
    LOGIN_RATE_WINDOW_SECONDS: int = 60

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",  # Vite default
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]

    LOG_JSON: bool = False
    LOG_LEVEL: str = "INFO"
    MEMORY_LOG_INTERVAL_SECONDS: int = 60  # 0 disables the periodic memory log

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        """Development and test runs expose stack traces and the test-support routes."""
        return self.ENVIRONMENT in ("development", "test")


settings = Settings()
