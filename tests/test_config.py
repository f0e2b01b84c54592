"""
Tests for settings, logging setup and exceptions.
"""

import logging

import pytest
import structlog
from pydantic import ValidationError

from persistence_hooks.core.config import Settings
from persistence_hooks.core.logging import configure_logging
from persistence_hooks.domain.exceptions import (
    AuditConfigurationException,
    PersistenceHooksException,
)


class TestSettings:
    """Test settings loading and validation."""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.SERVICE_NAME == "persistence-hooks"
        assert settings.AUDIT_ACTOR_ID == 1
        assert settings.ASYNC_DATABASE_URL.startswith("sqlite+aiosqlite")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("AUDIT_ACTOR_ID", "12")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings(_env_file=None)

        assert settings.AUDIT_ACTOR_ID == 12
        assert settings.LOG_LEVEL == "DEBUG"

    @pytest.mark.parametrize("actor_id", [0, -1])
    def test_actor_id_must_be_positive(self, actor_id):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, AUDIT_ACTOR_ID=actor_id)


class TestLogging:
    """Test structlog configuration."""

    def test_configure_logging_sets_level(self):
        configure_logging("debug")

        assert logging.getLogger().level == logging.DEBUG
        assert structlog.is_configured()

        configure_logging("INFO")
        assert logging.getLogger().level == logging.INFO


class TestExceptions:
    """Test the exception hierarchy."""

    def test_base_exception(self):
        exc = PersistenceHooksException("boom", {"key": "value"})

        assert str(exc) == "boom"
        assert exc.details == {"key": "value"}

    def test_base_exception_default_details(self):
        assert PersistenceHooksException("boom").details == {}

    def test_audit_configuration_exception(self):
        exc = AuditConfigurationException(42, "not a session")

        assert isinstance(exc, PersistenceHooksException)
        assert exc.message == "Cannot install audit listener on int: not a session"
        assert exc.details == {"target": "42", "reason": "not a session"}
