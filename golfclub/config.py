from __future__ import annotations

from pathlib import Path
import os

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    # python-dotenv is optional; ignore if not installed
    pass

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default database location
DB_FILE = REPO_ROOT / "golfclub.db"

DEFAULT_JWT_SECRET = "golfclub-dev-secret"


class BaseConfig:
    """Base settings shared across environments."""

    JWT_ALGORITHM = "HS256"
    SECURE_COOKIES = False
    REQUIRE_JWT_SECRET = False


class ProductionConfig(BaseConfig):
    SECURE_COOKIES = True
    REQUIRE_JWT_SECRET = True


class TestConfig(BaseConfig):
    pass


class DevelopmentConfig(BaseConfig):
    pass


_CONFIGS = {
    "production": ProductionConfig,
    "test": TestConfig,
    "development": DevelopmentConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def get_database_url() -> str:
    """Return the configured database connection string.

    An empty value means the SQLite file at ``DB_FILE``.
    """
    return os.getenv("DATABASE_URL", "")


def get_jwt_secret() -> str:
    """Return the secret used to sign access tokens and session cookies."""
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        if ActiveConfig.REQUIRE_JWT_SECRET:
            raise RuntimeError("JWT_SECRET must be set in production")
        secret = DEFAULT_JWT_SECRET
    return secret


def get_jwt_algorithm() -> str:
    return ActiveConfig.JWT_ALGORITHM


def get_token_ttl_hours() -> int:
    """Return the access token lifetime in hours."""
    return int(os.getenv("TOKEN_TTL_HOURS", "24"))


def get_session_max_age() -> int:
    """Return the session cookie lifetime in seconds."""
    return int(os.getenv("SESSION_MAX_AGE", str(24 * 60 * 60)))


def secure_cookies() -> bool:
    return ActiveConfig.SECURE_COOKIES


def get_client_url() -> str:
    """Return the browser client origin allowed by CORS."""
    return os.getenv("CLIENT_URL", "http://localhost:3000")


def get_oauth_callback_base() -> str:
    """Return the public base URL the identity providers redirect back to."""
    return os.getenv("OAUTH_CALLBACK_BASE", "http://localhost:8000")


def get_google_client_id() -> str:
    return os.getenv("GOOGLE_CLIENT_ID", "")


def get_google_client_secret() -> str:
    return os.getenv("GOOGLE_CLIENT_SECRET", "")


def get_facebook_app_id() -> str:
    return os.getenv("FACEBOOK_APP_ID", "")


def get_facebook_app_secret() -> str:
    return os.getenv("FACEBOOK_APP_SECRET", "")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()

__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_jwt_secret",
    "get_jwt_algorithm",
    "get_token_ttl_hours",
    "get_session_max_age",
    "secure_cookies",
    "get_client_url",
    "get_oauth_callback_base",
    "get_google_client_id",
    "get_google_client_secret",
    "get_facebook_app_id",
    "get_facebook_app_secret",
    "get_log_level",
]
