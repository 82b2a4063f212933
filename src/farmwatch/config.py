from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from typing import Annotated, List
import os

class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./farmwatch.db")

    # Server
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", 8000))
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # CORS (CORS_ORIGINS is a comma-separated string)
    cors_origins: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "")
    jwt_algorithm: str = "HS256"
    # Sessions last a week, like the dashboard's auth cookie.
    access_token_expire_minutes: int = 7 * 24 * 60

    # Live updates
    change_feed_queue_size: int = 1000
    reconnect_initial_delay_sec: float = 5.0
    reconnect_max_delay_sec: float = 30.0

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def signing_key(self) -> str:
        # Debug runs without SECRET_KEY still get working tokens.
        return self.secret_key or "farmwatch-development-only"

settings = Settings()
