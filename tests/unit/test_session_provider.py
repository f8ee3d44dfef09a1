"""Tests for session providers and settings."""

import logging

import pytest

from config.settings import Settings, configure_logging
from domain.exceptions import NotAuthenticatedError, OrganizationNotFoundError, SessionError
from infrastructure.auth.session_provider import EnvSessionProvider, StaticSessionProvider


class TestStaticSessionProvider:
    """Test StaticSessionProvider."""

    def test_identity(self) -> None:
        provider = StaticSessionProvider(" alice ", "labo-1")

        identity = provider.current_identity()

        assert identity.user_id == "alice"
        assert identity.organization_id == "labo-1"
        assert provider.organization_id() == "labo-1"

    def test_missing_user(self) -> None:
        provider = StaticSessionProvider(None, "labo-1")

        with pytest.raises(NotAuthenticatedError):
            provider.current_identity()

    def test_missing_organization(self) -> None:
        provider = StaticSessionProvider("alice", "  ")

        with pytest.raises(OrganizationNotFoundError):
            provider.organization_id()

    def test_sign_in_and_out(self) -> None:
        provider = StaticSessionProvider(None, None)

        provider.sign_in("bob", "labo-2")
        assert provider.organization_id() == "labo-2"

        provider.sign_out()
        with pytest.raises(SessionError):
            provider.current_identity()


class TestEnvSessionProvider:
    """Test identity from settings."""

    def test_identity_from_settings(self) -> None:
        provider = EnvSessionProvider(Settings(user_id="carol", organization_id="labo-3"))

        assert provider.current_identity().user_id == "carol"

    def test_default_settings_are_anonymous(self) -> None:
        with pytest.raises(NotAuthenticatedError):
            EnvSessionProvider(Settings()).current_identity()


class TestSettings:
    """Test Settings.from_env."""

    def test_from_env(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("FORMULATOR_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FORMULATOR_USER", "dave")
        monkeypatch.setenv("FORMULATOR_ORGANIZATION", "labo-4")
        monkeypatch.setenv("FORMULATOR_LOG_LEVEL", "warning")

        settings = Settings.from_env(dotenv=False)

        assert settings.data_dir == str(tmp_path)
        assert settings.user_id == "dave"
        assert settings.organization_id == "labo-4"
        assert settings.log_level == "WARNING"

    def test_defaults(self, monkeypatch) -> None:
        for name in (
            "FORMULATOR_DATA_DIR",
            "FORMULATOR_USER",
            "FORMULATOR_ORGANIZATION",
            "FORMULATOR_LOG_FILE",
            "FORMULATOR_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env(dotenv=False)

        assert settings == Settings()
        assert settings.log_level == "DEBUG"

    def test_configure_logging(self, monkeypatch, tmp_path) -> None:
        calls = {}
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))
        log_file = str(tmp_path / "app.log")

        configure_logging(Settings(log_file=log_file, log_level="INFO"))

        assert calls["filename"] == log_file
        assert calls["level"] == logging.INFO
