"""Tests for settings defaults and production guards."""

from __future__ import annotations

from datetime import timedelta

import pytest

from sesame.config import Settings
from sesame.db.engine import _sync_to_async_url


class TestSettings:
    def test_defaults(self):
        s = Settings(database_url="sqlite:///./x.db")
        assert s.short_session_duration == timedelta(minutes=3)
        assert s.long_session_duration == timedelta(days=90)
        assert s.account_lifetime == timedelta(days=30)
        assert s.effective_cookie_name() == "SESAME_SESSION"
        assert s.cookie_secure is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SESAME_SHORT_SESSION_DURATION_SECONDS", "60")
        monkeypatch.setenv("SESAME_RP_ID", "sesame.example")
        s = Settings()
        assert s.short_session_duration == timedelta(minutes=1)
        assert s.effective_rp_id() == "sesame.example"

    def test_production_cookie(self):
        s = Settings(env="production")
        assert s.effective_cookie_name() == "__Secure-SESAME_SESSION"
        assert s.cookie_secure is True

    def test_ephemeral_secret_is_stable(self):
        s = Settings()
        with pytest.warns(UserWarning):
            first = s.effective_secret()
        assert s.effective_secret() == first

    def test_production_requires_secrets(self):
        s = Settings(env="production")
        with pytest.raises(RuntimeError):
            s.effective_secret()
        with pytest.raises(RuntimeError):
            s.effective_rp_id()
        with pytest.raises(RuntimeError):
            s.effective_origin()

    def test_dev_defaults_warn(self):
        s = Settings()
        with pytest.warns(UserWarning):
            assert s.effective_rp_id() == "localhost"
        with pytest.warns(UserWarning):
            assert s.effective_origin() == "http://localhost:8000"


class TestDatabaseUrl:
    def test_sqlite(self):
        assert _sync_to_async_url("sqlite:///./x.db") == "sqlite+aiosqlite:///./x.db"

    def test_postgres(self):
        assert _sync_to_async_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert _sync_to_async_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_already_async(self):
        assert _sync_to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"
