"""
Application settings.
"""
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Database
    DATABASE_URL: str = "sqlite:///./data/cashback.db"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # File storage
    DATA_DIR: str = "./data"

    # Fiscal ticket lookup service
    FISCAL_API_URL: str = "https://consumer.oofd.kz/api/tickets/get-by-url"
    FISCAL_API_TIMEOUT: float = 10.0
    FISCAL_API_VERIFY_SSL: bool = True

    # Promo rules
    RECEIPT_VALID_DAYS: int = 5

    # Alias decision propagation
    PROPAGATION_MAX_RETRIES: int = 3


settings = Settings()
