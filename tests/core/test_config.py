"""Tests for configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from spaceledger.core.config import CoreSettings, clear_config_cache, get_config


class TestCoreSettings:
    """Tests for CoreSettings."""

    def test_defaults(self):
        settings = CoreSettings(_env_file=None)
        assert settings.store_backend == "memory"
        assert settings.challenge_ttl_seconds == 300
        assert settings.session_ttl_seconds == 86400
        assert settings.session_sweep_interval_seconds == 3600
        assert settings.delegation_sweep_interval_seconds == 3600
        assert settings.challenge_sweep_interval_seconds == 3600

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SPACELEDGER_STORE_BACKEND", "POSTGRES")
        monkeypatch.setenv("SPACELEDGER_DB_HOST", "db.internal")
        monkeypatch.setenv("SPACELEDGER_SESSION_TTL_SECONDS", "60")
        settings = CoreSettings(_env_file=None)
        assert settings.store_backend == "postgres"
        assert settings.db_host == "db.internal"
        assert settings.session_ttl_seconds == 60

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            CoreSettings(_env_file=None, store_backend="redis")

    def test_connection_params(self):
        settings = CoreSettings(_env_file=None, db_host="h", db_port=5433, db_name="n", db_user="u", db_password="p")
        assert settings.connection_params == {"host": "h", "port": 5433, "dbname": "n", "user": "u", "password": "p"}
        assert settings.database_url == "postgresql://u:p@h:5433/n"


class TestGetConfig:
    """Tests for the cached config accessor."""

    def test_cached(self):
        assert get_config() is get_config()

    def test_clear(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("SPACELEDGER_CHALLENGE_TTL_SECONDS", "10")
        clear_config_cache()
        second = get_config()
        assert second is not first
        assert second.challenge_ttl_seconds == 10
