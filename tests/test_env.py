import pytest

from storefront import env

REQUIRED = {
    "GOOGLE_CLIENT_ID": "google-client",
    "GOOGLE_CLIENT_SECRET": "google-secret",
    "REDIRECT_URI": "http://localhost:3001/auth/google/callback",
    "SESSION_SECRET": "session-secret",
    "FRONTEND_URL": "http://localhost:8080/",
    "PORT": "3001",
}
OPTIONAL = (
    "APP_ENV",
    "AUTH_HOST",
    "AUTH_PROVIDER_TIMEOUT",
    "PENDING_AUTH_TTL_SECONDS",
    "SESSION_COOKIE_NAME",
    "AUTH_CORS_ORIGINS",
)


@pytest.fixture
def required_env(monkeypatch):
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)
    for key in OPTIONAL:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_validate_env_lists_every_missing_variable(required_env) -> None:
    required_env.delenv("GOOGLE_CLIENT_SECRET")
    required_env.delenv("SESSION_SECRET")

    with pytest.raises(RuntimeError, match="GOOGLE_CLIENT_SECRET, SESSION_SECRET"):
        env.validate_env()


def test_validate_env_rejects_relative_frontend_url(required_env) -> None:
    required_env.setenv("FRONTEND_URL", "localhost:8080")

    with pytest.raises(RuntimeError, match="FRONTEND_URL"):
        env.validate_env()


def test_validate_env_rejects_non_integer_port(required_env) -> None:
    required_env.setenv("PORT", "eighty")

    with pytest.raises(RuntimeError, match="PORT must be an integer"):
        env.validate_env()


@pytest.mark.parametrize("port", ["0", "-1", "65536"])
def test_validate_env_rejects_out_of_range_port(required_env, port) -> None:
    required_env.setenv("PORT", port)

    with pytest.raises(RuntimeError, match="PORT must be between 1 and 65535"):
        env.validate_env()


def test_load_settings_defaults(required_env) -> None:
    settings = env.load_settings()

    assert settings.frontend_url == "http://localhost:8080"
    assert settings.port == 3001
    assert settings.host == "127.0.0.1"
    assert settings.cookie_secure is False
    assert settings.cookie_name == "storefront_session"
    assert settings.provider_timeout == 10.0
    assert settings.pending_auth_ttl_seconds == 600
    assert settings.cors_origins == set()


def test_load_settings_production_uses_secure_cookies(required_env) -> None:
    required_env.setenv("APP_ENV", "production")
    required_env.setenv("AUTH_PROVIDER_TIMEOUT", "2.5")

    settings = env.load_settings()

    assert settings.cookie_secure is True
    assert settings.provider_timeout == 2.5


def test_provider_timeout_must_be_positive(required_env) -> None:
    required_env.setenv("AUTH_PROVIDER_TIMEOUT", "0")

    with pytest.raises(RuntimeError, match="greater than zero"):
        env.load_settings()


def test_parse_csv_env(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_CORS_ORIGINS", " https://a.example , ,https://b.example")

    assert env.parse_csv_env("AUTH_CORS_ORIGINS") == {"https://a.example", "https://b.example"}


@pytest.mark.parametrize("value", ["1", "true", "YES", " on "])
def test_is_truthy(value) -> None:
    assert env.is_truthy(value) is True


def test_is_truthy_rejects_other_values() -> None:
    assert env.is_truthy(None) is False
    assert env.is_truthy("0") is False
