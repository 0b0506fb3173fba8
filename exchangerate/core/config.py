from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_AUTH_METHODS = {"bearer", "url"}
ALLOWED_CACHE_BACKENDS = {"memory", "sqlite"}


class Settings(BaseSettings):
    """Settings loaded from environment with defaults.

    Environment variable mapping uses the EXCHANGE_RATE_ prefix
    (e.g. EXCHANGE_RATE_API_KEY, EXCHANGE_RATE_CACHE_BACKEND, EXCHANGE_RATE_DEBUG).
    """

    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_RATE_", env_file=".env", case_sensitive=False
    )

    app_name: str = "Exchange Rate API"
    debug: bool = False
    version: str = "0.1.0"

    # Upstream API
    api_key: Optional[str] = None
    base_url: AnyHttpUrl = "https://v6.exchangerate-api.com/v6"  # type: ignore[assignment]
    auth_method: str = "bearer"
    http_timeout_seconds: float = 30.0

    # Response cache
    cache_enabled: bool = True
    cache_backend: str = "memory"
    cache_db_path: Path = Path.home() / ".cache" / "exchangerate" / "cache.sqlite3"
    cache_default_ttl_seconds: int = 86400  # 24 hours

    @field_validator("auth_method")
    @classmethod
    def valid_auth_method(cls, v: str) -> str:
        v = v.lower()
        if v not in ALLOWED_AUTH_METHODS:
            raise ValueError(
                f"Unsupported auth_method '{v}'. Allowed: {sorted(ALLOWED_AUTH_METHODS)}"
            )
        return v

    @field_validator("cache_backend")
    @classmethod
    def valid_cache_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ALLOWED_CACHE_BACKENDS:
            raise ValueError(
                f"Unsupported cache_backend '{v}'. Allowed: {sorted(ALLOWED_CACHE_BACKENDS)}"
            )
        return v

    @field_validator("cache_default_ttl_seconds")
    @classmethod
    def positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("cache_default_ttl_seconds must be positive")
        return v

    @property
    def base_url_str(self) -> str:
        return str(self.base_url).rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
