"""Tests for environment-backed settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from lares.config.settings import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for key in ("LARES_DATABASE", "LARES_PORT", "LARES_USERNAME", "LARES_PASSWORD"):
            monkeypatch.delenv(key, raising=False)

        settings = Settings(_env_file=None)

        assert settings.database == "lares.db"
        assert settings.host == "127.0.0.1"
        assert settings.port == 4000
        assert settings.poll_interval_seconds == 1800
        assert not settings.auth_enabled

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LARES_DATABASE", "/tmp/feeds.db")
        monkeypatch.setenv("LARES_POLL_INTERVAL_SECONDS", "60")

        settings = Settings(_env_file=None)

        assert settings.database == "/tmp/feeds.db"
        assert settings.poll_interval_seconds == 60

    def test_path_becomes_sqlite_url(self) -> None:
        settings = Settings(_env_file=None, database="/var/lib/lares/lares.db")

        assert settings.database_url == "sqlite+aiosqlite:////var/lib/lares/lares.db"

    def test_full_url_kept(self) -> None:
        url = "postgresql+asyncpg://lares:pw@localhost:5432/lares"

        assert Settings(_env_file=None, database=url).database_url == url

    def test_username_without_password_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, username="admin")

    def test_auth_enabled_with_both_credentials(self) -> None:
        settings = Settings(_env_file=None, username="admin", password="secret")

        assert settings.auth_enabled

    def test_poll_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, poll_interval_seconds=0)

    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_must_be_in_range(self, port: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, port=port)

    def test_get_settings_is_cached(self) -> None:
        assert get_settings() is get_settings()
