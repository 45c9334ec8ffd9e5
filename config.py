from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Application settings, read from TASKS_* environment variables or a .env file
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TASKS_", env_file=".env", case_sensitive=False
    )

    # Snapshot file, rewritten after every mutation
    database_path: str = "database.json"

    # Server
    host: str = "127.0.0.1"
    port: int = 8080

    # CORS: any http://localhost origin, plus "null" for pages opened from disk
    cors_origin_regex: str = r"^http://localhost.*$"
    cors_allow_null_origin: bool = True
    cors_max_age: int = 3600

    # Seconds to wait for the store lock. None blocks until it is free.
    lock_timeout_seconds: Optional[float] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return v

    @field_validator("lock_timeout_seconds")
    @classmethod
    def check_lock_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("lock_timeout_seconds must be positive")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
