from __future__ import annotations

import logging

LOGGER = logging.getLogger("storefront.auth")
APP_VERSION = "0.1.0"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 10.0
DEFAULT_PENDING_AUTH_TTL_SECONDS = 600
DEFAULT_SESSION_COOKIE_NAME = "storefront_session"
SESSION_MAX_AGE_SECONDS = 24 * 60 * 60

FRONTEND_AUTH_PATH = "/auth"

REQUIRED_ENV_VARS = (
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "REDIRECT_URI",
    "SESSION_SECRET",
    "FRONTEND_URL",
    "PORT",
)
