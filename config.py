from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "storefront"

    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 30

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_MB: int = 5

    CORS_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Checkout charges
    TAX_RATE: float = 0.05
    FREE_SHIPPING_THRESHOLD: float = 100
    SHIPPING_COST: float = 10

    LOW_STOCK_THRESHOLD: int = 10


settings = Settings()
