"""Unit tests for tracker_engine.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tracker_engine.catalog.introspector import DEFAULT_EXCLUDED_SCHEMAS
from tracker_engine.config import PlatformEnv, Settings, StateStoreType, load_settings
from tracker_engine.identity.resolver import DEFAULT_SCHEMA

# ---------------------------------------------------------------------------
# Settings - default values
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_default_env(self):
        settings = Settings()
        assert settings.env == PlatformEnv.DEV

    def test_default_database_url(self):
        settings = Settings()
        assert settings.database_url.startswith("postgresql+asyncpg://")

    def test_default_state_store_type(self):
        settings = Settings()
        assert settings.state_store_type == StateStoreType.LOCAL
        assert settings.local_db_path == Path(".tracker/state.db")

    def test_default_schemas(self):
        settings = Settings()
        assert settings.default_schema == "public"
        assert settings.tracker_schema == "dba_objects_pg"
        assert settings.excluded_schemas == ["pg_catalog", "information_schema"]

    def test_defaults_shared_with_resolver_and_introspector(self):
        settings = Settings()
        assert settings.default_schema == DEFAULT_SCHEMA
        assert tuple(settings.introspection_exclusions()) == DEFAULT_EXCLUDED_SCHEMAS

    def test_default_logging(self):
        settings = Settings()
        assert settings.structured_logging is False
        assert settings.log_level == "INFO"

    def test_default_poll_interval(self):
        assert Settings().poll_interval_seconds == 60.0


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


class TestSettingsEnvOverrides:
    def test_env_var_overrides_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKER_ENV", "prod")
        assert Settings().env == PlatformEnv.PROD

    def test_env_var_overrides_default_schema(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKER_DEFAULT_SCHEMA", "app")
        assert Settings().default_schema == "app"

    def test_env_var_overrides_excluded_schemas(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKER_EXCLUDED_SCHEMAS", '["pg_catalog", "audit"]')
        assert Settings().excluded_schemas == ["pg_catalog", "audit"]

    def test_env_var_overrides_structured_logging(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKER_STRUCTURED_LOGGING", "true")
        assert Settings().structured_logging is True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestSettingsValidation:
    def test_log_level_normalised(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(log_level="chatty")

    def test_blank_schema_rejected(self):
        with pytest.raises(ValidationError):
            Settings(default_schema="   ")

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValidationError):
            Settings(poll_interval_seconds=0)

    def test_tracker_schema_must_be_identifier(self):
        with pytest.raises(ValidationError):
            Settings(tracker_schema='dba"; DROP SCHEMA public; --')


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_introspection_exclusions_adds_tracker_schema(self):
        settings = Settings()
        assert settings.introspection_exclusions() == ["pg_catalog", "information_schema", "dba_objects_pg"]

    def test_introspection_exclusions_no_duplicate(self):
        settings = Settings(excluded_schemas=["dba_objects_pg"])
        assert settings.introspection_exclusions() == ["dba_objects_pg"]

    def test_load_settings_overrides(self):
        settings = load_settings(debug=True, default_schema="hr")
        assert settings.debug is True
        assert settings.default_schema == "hr"
