"""Settings loaded from the environment and an optional .env file."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Mongo
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "storefront"

    # Session tokens
    ACCESS_TOKEN_SECRET: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    USER_COOKIE_NAME: str = "token"
    SELLER_COOKIE_NAME: str = "sellerToken"

    # Realtime fan-out; empty REDIS_URL keeps delivery in-process
    REDIS_URL: str = ""
    REDIS_CHANNEL: str = "storefront:chat"

    # CORS
    FRONTEND_URL: str = ""
    CORS_ORIGINS: str = "http://localhost:5173"
    CORS_ORIGIN_REGEX: str = r"https://.*\.app\.github\.dev"

    # Chat limits
    CHAT_MAX_ATTACHMENTS: int = 4
    CHAT_MAX_BODY_LENGTH: int = 4000

    # Uploaded chat images, served back under CHAT_UPLOAD_URL_PREFIX
    CHAT_UPLOAD_DIR: str = "uploads/chat"
    CHAT_UPLOAD_URL_PREFIX: str = "/uploads/chat"
    CHAT_MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    @property
    def allowed_origins(self) -> List[str]:
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        if self.FRONTEND_URL and self.FRONTEND_URL not in origins:
            origins.append(self.FRONTEND_URL)
        return origins


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
