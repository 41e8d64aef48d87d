import logging

import pytest

from budget_auth.core.config import Settings, SettingsError, load_settings, parse_duration


@pytest.mark.parametrize(
    "value,expected",
    [("90", 90), ("15m", 900), ("1h", 3600), ("24H", 86400), ("7d", 604800), (" 30s ", 30), (45, 45)],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "1w", "h", "-5m", "1.5h"])
def test_parse_duration_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_signing_keys_must_be_present_and_distinct():
    with pytest.raises(SettingsError):
        Settings(JWT_SECRET="", JWT_REFRESH_SECRET="b" * 32).validate_signing_keys()
    with pytest.raises(SettingsError):
        Settings(JWT_SECRET="a" * 32, JWT_REFRESH_SECRET="").validate_signing_keys()
    with pytest.raises(SettingsError):
        Settings(JWT_SECRET="same" * 8, JWT_REFRESH_SECRET="same" * 8).validate_signing_keys()
    Settings(JWT_SECRET="a" * 32, JWT_REFRESH_SECRET="b" * 32).validate_signing_keys()


def test_load_settings_exits_on_identical_keys(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "shared-secret-value")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "shared-secret-value")
    with pytest.raises(SystemExit):
        load_settings()


def test_load_settings_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("JWT_ACCESS_TTL", "15m")
    monkeypatch.setenv("JWT_REFRESH_TTL", "7d")
    monkeypatch.setenv("AUTH_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example.com, https://b.example.com,")
    settings = load_settings()
    assert settings.ACCESS_TTL_SECONDS == 900
    assert settings.REFRESH_TTL_SECONDS == 604800
    assert settings.AUTH_DB_PATH == str(tmp_path / "x.db")
    assert settings.allowed_origins == ["https://a.example.com", "https://b.example.com"]


def test_postgres_without_connection_falls_back(monkeypatch, caplog):
    monkeypatch.setenv("DB_TYPE", "postgres")
    for name in ("POSTGRES_URL", "POSTGRES_HOST", "POSTGRES_DB", "POSTGRES_USER", "POSTGRES_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    with caplog.at_level(logging.WARNING):
        settings = load_settings()
    assert settings.postgres_configured() is False
    assert "falling back to SQLite" in caplog.text


def test_postgres_configured_from_parts():
    settings = Settings(
        DB_TYPE="postgres",
        POSTGRES_URL=None,
        POSTGRES_HOST="db",
        POSTGRES_DB="auth",
        POSTGRES_USER="auth",
        POSTGRES_PASSWORD="pw",
    )
    assert settings.postgres_configured() is True
    assert Settings(DB_TYPE="sqlite", POSTGRES_URL="postgresql://x/y").postgres_configured() is False


def test_session_secret_is_generated_once():
    settings = Settings(SESSION_SECRET=None)
    first = settings.session_secret()
    assert len(first) >= 32
    assert settings.session_secret() == first
