"""
Unit tests for settings.
"""

import pytest

from pgqueue.config import Settings
from pgqueue.constants import DEFAULT_TABLE_NAME


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("QUEUE_TABLE_NAME", raising=False)

        settings = Settings(_env_file=None)

        assert settings.queue_table_name == DEFAULT_TABLE_NAME == "__pgq_jobs"
        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert settings.reaper_stale_after_seconds > 0

    def test_environment_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("QUEUE_TABLE_NAME", "billing_jobs")
        monkeypatch.setenv("WORKER_POLL_INTERVAL_SECONDS", "0.25")

        settings = Settings(_env_file=None)

        assert settings.queue_table_name == "billing_jobs"
        assert settings.worker_poll_interval_seconds == 0.25
