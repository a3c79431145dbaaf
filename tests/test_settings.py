"""Settings and logging setup."""
import logging

import pytest
import structlog
from pydantic import ValidationError

from order_ledger.config import Settings
from order_ledger.monitoring import setup_logging


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.default_currency == "CLP"
        assert settings.snapshot_frequency == 10
        assert settings.strict_transitions is True
        assert settings.command_retry_attempts == 2
        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert not settings.is_sqlite

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ORDER_LEDGER_SNAPSHOT_FREQUENCY", "25")
        monkeypatch.setenv("ORDER_LEDGER_STRICT_TRANSITIONS", "false")

        settings = Settings()

        assert settings.snapshot_frequency == 25
        assert settings.strict_transitions is False

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_negative_snapshot_frequency(self):
        with pytest.raises(ValidationError):
            Settings(snapshot_frequency=-1)

    def test_sqlite_detection(self, test_settings):
        assert test_settings.is_sqlite
        assert not Settings(database_url="postgresql+asyncpg://u:p@db/ledger").is_sqlite


class TestLogging:
    @pytest.fixture
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_setup_logging_emits_json(self, test_settings, capsys, restore_logging):
        setup_logging(test_settings)

        out = capsys.readouterr().out
        assert "logging_configured" in out
        assert "order-ledger-test" in out
