"""
Tests for application configuration, database configuration and shared utilities.
"""
import pytest
from datetime import date, datetime

from app.config import LocalConfig, ProductionConfig, TestingConfig, get_config, parse_work_days
from app.datetime_utils import date_or_none_iso, format_iso_date, parse_iso_date, utc_now_iso
from app.db_config import get_database_config
from app.logging_config import ScheduleOperationContext


# ==============================================================================
# CONFIG
# ==============================================================================

class TestConfig:
    """Tests for environment selection and work-day parsing."""

    def test_parse_work_days(self):
        """Test that a comma list is parsed, deduplicated and sorted."""
        assert parse_work_days("5,1, 2,2,3") == [1, 2, 3, 5]

    def test_parse_work_days_drops_junk(self):
        """Test that out-of-range entries are dropped and empty input falls back."""
        assert parse_work_days("0,7,x,6") == [0, 6]
        assert parse_work_days("") == [1, 2, 3, 4, 5]
        assert parse_work_days(None) == [1, 2, 3, 4, 5]

    @pytest.mark.parametrize("env, expected", [
        ("local", LocalConfig),
        ("production", ProductionConfig),
        ("test", TestingConfig),
        ("something-else", LocalConfig),
    ])
    def test_get_config(self, monkeypatch, env, expected):
        """Test that FLASK_ENV picks the config class."""
        monkeypatch.setenv("FLASK_ENV", env)
        assert get_config() is expected

    def test_database_config_for_testing(self):
        """Test that the testing database is in-memory SQLite."""
        uri, options = get_database_config("testing")
        assert uri == "sqlite://"
        assert options["connect_args"] == {"check_same_thread": False}

    def test_production_requires_url(self, monkeypatch):
        """Test that production refuses to start without a database URL."""
        monkeypatch.delenv("PRODUCTION_DATABASE_URL", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValueError):
            get_database_config("production")


# ==============================================================================
# DATETIME UTILS
# ==============================================================================

class TestDatetimeUtils:
    """Tests for the date helpers."""

    def test_parse_iso_date(self):
        """Test accepted and rejected inputs."""
        assert parse_iso_date("2024-01-08") == date(2024, 1, 8)
        assert parse_iso_date(datetime(2024, 1, 8, 17, 0)) == date(2024, 1, 8)
        assert parse_iso_date("2024-1-8") is None
        assert parse_iso_date(20240108) is None

    def test_formatting(self):
        """Test ISO formatting helpers."""
        assert format_iso_date(date(2024, 1, 8)) == "2024-01-08"
        assert format_iso_date("junk") == ""
        assert date_or_none_iso(None) is None

    def test_utc_now_iso(self):
        """Test the Z-suffixed timestamp."""
        assert utc_now_iso().endswith("Z")


# ==============================================================================
# OPERATION CONTEXT
# ==============================================================================

class TestScheduleOperationContext:
    """Tests for ScheduleOperationContext."""

    def test_generates_operation_id(self):
        """Test that an operation id is generated when none is given."""
        with ScheduleOperationContext("move", lot_id="lot-1") as context:
            assert len(context.operation_id) == 8

    def test_does_not_suppress_exceptions(self):
        """Test that errors inside the context propagate."""
        with pytest.raises(RuntimeError):
            with ScheduleOperationContext("delay", lot_id="lot-1", operation_id="op-1"):
                raise RuntimeError("boom")
