from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class WatchSettings(BaseSettings):
    """
    Configuration for the watch agent.

    Environment variables use the WATCH_ prefix (WATCH_EMAIL, WATCH_PASSWORD, ...).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="WATCH_",
        case_sensitive=False,
        extra="ignore",  # ignore unknown env vars
    )

    # --- FarmWatch server ---
    server_base_url: str = "http://127.0.0.1:8000"
    email: str = ""
    password: str = ""
    request_timeout_sec: float = 10.0

    # --- Live collections to follow ---
    collections: List[str] = ["fire_zones", "security_points", "team_members"]

    # --- Change feed reconnection (seconds) ---
    reconnect_initial_delay_sec: float = 5.0
    reconnect_max_delay_sec: float = 30.0

    # --- Local notification log ---
    notification_store_path: str = "notifications.json"

    # --- Logging ---
    log_level: str = "INFO"


# Convenience global settings object.
# This lets other modules do: from watch_agent.config import settings
settings = WatchSettings()
