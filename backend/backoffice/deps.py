"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Cookie, HTTPException, status
from jose import JWTError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .security import decode_token
from .services.activity_logger import Actor


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"

    # Redis Configuration (ARQ)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Order sync
    ORDER_SYNC_PAGE_SIZE: int = 100
    ORDER_SYNC_MAX_PAGES: int = 1
    ORDER_SYNC_CRON_ENABLED: bool = True
    WOOCOMMERCE_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_current_actor(
    access_token: Optional[str] = Cookie(default=None, alias="access_token"),
) -> Actor:
    """Resolve the calling user from the `access_token` cookie.

    The cookie value is expected to be in the form: "Bearer <jwt>". Only the
    identity is needed here; it ends up on activity records.
    """
    if not access_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    # Remove optional "Bearer " prefix
    if access_token.startswith("Bearer "):
        token = access_token[len("Bearer ") :]
    else:
        token = access_token

    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    return Actor(uid=subject, display_name=payload.get("name"), email=payload.get("email"))
