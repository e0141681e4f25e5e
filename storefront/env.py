from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, ValidationError

from .constants import (
    DEFAULT_HOST,
    DEFAULT_PENDING_AUTH_TTL_SECONDS,
    DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    DEFAULT_SESSION_COOKIE_NAME,
    LOGGER,
    REQUIRED_ENV_VARS,
)


@dataclass(frozen=True)
class Settings:
    google_client_id: str
    google_client_secret: str
    redirect_uri: str
    session_secret: str
    frontend_url: str
    port: int
    host: str = DEFAULT_HOST
    cookie_secure: bool = False
    cookie_name: str = DEFAULT_SESSION_COOKIE_NAME
    provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    pending_auth_ttl_seconds: int = DEFAULT_PENDING_AUTH_TTL_SECONDS
    cors_origins: set[str] = field(default_factory=set)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_csv_env(key: str) -> set[str]:
    raw = os.getenv(key, "")
    if not raw.strip():
        return set()
    return {item.strip() for item in raw.split(",") if item.strip()}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")
    if value <= 0:
        raise RuntimeError(f"{key} must be greater than zero.")
    return value


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=True)


def _validate_http_url(key: str) -> None:
    value = os.getenv(key, "").strip()
    try:
        AnyHttpUrl(value)
    except ValidationError as error:
        raise RuntimeError(
            f"{key} must be an absolute http(s) URL (for example: http://localhost:8080)."
        ) from error


def validate_env() -> None:
    missing = [key for key in REQUIRED_ENV_VARS if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    _validate_http_url("FRONTEND_URL")
    _validate_http_url("REDIRECT_URI")
    port = _get_env_int("PORT", 0)
    if not 1 <= port <= 65535:
        raise RuntimeError("PORT must be between 1 and 65535.")


def load_settings() -> Settings:
    validate_env()
    frontend_url = os.environ["FRONTEND_URL"].strip().rstrip("/")
    cookie_secure = os.getenv("APP_ENV", "").strip().lower() == "production"
    if not cookie_secure:
        LOGGER.info("APP_ENV is not production; session cookies are sent without Secure.")

    return Settings(
        google_client_id=os.environ["GOOGLE_CLIENT_ID"].strip(),
        google_client_secret=os.environ["GOOGLE_CLIENT_SECRET"].strip(),
        redirect_uri=os.environ["REDIRECT_URI"].strip(),
        session_secret=os.environ["SESSION_SECRET"].strip(),
        frontend_url=frontend_url,
        port=_get_env_int("PORT", 0),
        host=os.getenv("AUTH_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST,
        cookie_secure=cookie_secure,
        cookie_name=os.getenv("SESSION_COOKIE_NAME", "").strip() or DEFAULT_SESSION_COOKIE_NAME,
        provider_timeout=_get_env_float(
            "AUTH_PROVIDER_TIMEOUT", DEFAULT_PROVIDER_TIMEOUT_SECONDS
        ),
        pending_auth_ttl_seconds=_get_env_int(
            "PENDING_AUTH_TTL_SECONDS", DEFAULT_PENDING_AUTH_TTL_SECONDS
        ),
        cors_origins=parse_csv_env("AUTH_CORS_ORIGINS"),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("AUTH_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
