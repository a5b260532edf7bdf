"""Application settings loaded from environment variables and the .env file."""

from functools import lru_cache
from typing import List

from fastapi import Request
from pydantic import Field, PositiveInt, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the video sharing backend."""

    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    db_name: str = Field(default="videotube", alias="DB_NAME")
    cors_origin: str = Field(default="*", alias="CORS_ORIGIN")

    access_token_secret: SecretStr = Field(default=SecretStr("change-me-access"), alias="ACCESS_TOKEN_SECRET")
    access_token_expiry_minutes: PositiveInt = Field(default=60 * 24, alias="ACCESS_TOKEN_EXPIRY_MINUTES")
    refresh_token_secret: SecretStr = Field(default=SecretStr("change-me-refresh"), alias="REFRESH_TOKEN_SECRET")
    refresh_token_expiry_days: PositiveInt = Field(default=10, alias="REFRESH_TOKEN_EXPIRY_DAYS")
    cookie_secure: bool = Field(default=True, alias="COOKIE_SECURE")

    upload_dir: str = Field(default="uploads", alias="UPLOAD_DIR")
    ffprobe_path: str = Field(default="ffprobe", alias="FFPROBE_PATH")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    port: PositiveInt = Field(default=8000, alias="PORT")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()


def get_app_settings(request: Request) -> Settings:
    """Dependency returning the settings the running app was created with."""
    return request.app.state.settings
