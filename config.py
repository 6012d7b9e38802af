from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "E-commerce API"
    app_version: str = "1.0.0"
    environment: str = "development"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: str = "*"

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "e-shop"

    # Auth
    jwt_secret: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 30
    bcrypt_rounds: int = 12

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
