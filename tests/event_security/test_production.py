"""Smoke tests for the production settings module."""

from __future__ import annotations

import importlib
import sys

import pytest
from django.core.exceptions import ImproperlyConfigured


def _reload_production_settings():
    """Force a reload of the production settings module for isolation."""

    for module in [
        "event_security.settings.production",
        "event_security.settings.sentry",
        "event_security.settings.base",
        "event_security.settings",
    ]:
        sys.modules.pop(module, None)
    return importlib.import_module("event_security.settings.production")


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("DJANGO_ALLOWED_HOSTS", "checkin.example.org, kiosk.example.org")
    monkeypatch.setenv("DB_NAME", "ci_db")
    monkeypatch.setenv("DB_USER", "ci_user")
    monkeypatch.setenv("DB_PASSWORD", "ci_password")
    monkeypatch.setenv("DB_HOST", "postgres")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_CONN_MAX_AGE", "120")
    return monkeypatch


def test_production_database_configuration(production_env):
    settings = _reload_production_settings()

    database = settings.DATABASES["default"]
    assert database["ENGINE"] == "django.db.backends.postgresql"
    assert database["NAME"] == "ci_db"
    assert database["USER"] == "ci_user"
    assert database["PASSWORD"] == "ci_password"
    assert database["HOST"] == "postgres"
    assert database["PORT"] == "6543"
    assert database["CONN_MAX_AGE"] == 120


def test_production_enforces_secure_transport(production_env):
    settings = _reload_production_settings()

    assert settings.DEBUG is False
    assert settings.ALLOWED_HOSTS == ["checkin.example.org", "kiosk.example.org"]
    assert settings.SECURE_SSL_REDIRECT is True
    assert settings.SECURE_HSTS_SECONDS == 3600
    assert settings.SESSION_COOKIE_SECURE is True
    assert settings.CSRF_COOKIE_SECURE is True


def test_production_requires_allowed_hosts(production_env):
    production_env.delenv("DJANGO_ALLOWED_HOSTS")
    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings()


def test_invalid_verifier_threshold_is_rejected(monkeypatch):
    monkeypatch.setenv("CHECKIN_QUALITY_FLOOR", "150")
    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings()


def test_blink_window_must_be_ordered(monkeypatch):
    monkeypatch.setenv("CHECKIN_BLINK_MIN_SECONDS", "0.5")
    monkeypatch.setenv("CHECKIN_BLINK_MAX_SECONDS", "0.4")
    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings()


def test_session_timeout_can_be_disabled(monkeypatch):
    monkeypatch.setenv("CHECKIN_SESSION_TIMEOUT_SECONDS", "none")
    sys.modules.pop("event_security.settings.base", None)
    base = importlib.import_module("event_security.settings.base")
    assert base.CHECKIN_SESSION_TIMEOUT_SECONDS is None
