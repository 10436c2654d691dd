"""Settings — environment-driven configuration.

Tests:
    - Defaults work without any environment
    - Plain postgresql:// and sqlite:// URLs upgrade to async drivers
    - Environment variables override defaults (case-insensitive)
    - get_settings() is cached
"""

from rowcraft.config import Settings, get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)
    assert settings.database_url == "sqlite+aiosqlite:///rowcraft.db"
    assert settings.database_echo is False
    assert settings.log_level == "INFO"
    assert settings.log_format == "json"
    assert settings.log_sql is False


def test_postgres_url_upgraded_to_asyncpg():
    settings = Settings(database_url="postgresql://u:p@db:5432/app")
    assert settings.database_url == "postgresql+asyncpg://u:p@db:5432/app"


def test_sqlite_url_upgraded_to_aiosqlite():
    settings = Settings(database_url="sqlite:///local.db")
    assert settings.database_url == "sqlite+aiosqlite:///local.db"


def test_async_urls_left_alone():
    url = "postgresql+asyncpg://u:p@db/app"
    assert Settings(database_url=url).database_url == url


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LOG_SQL", "true")
    monkeypatch.setenv("log_level", "DEBUG")
    settings = Settings()
    assert settings.log_sql is True
    assert settings.log_level == "DEBUG"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
