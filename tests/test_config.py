"""Tests for environment driven configuration."""

from __future__ import annotations

import logging

import pytest

from shipping_portal.config import AppConfig, load_config

ENV_VARS = (
    "PORTAL_DATABASE",
    "PORTAL_SECRET_KEY",
    "MAIL_DEFAULT_SENDER",
    "MAIL_ALLOWED_SENDER_DOMAIN",
    "MAIL_ENABLED",
    "MAIL_PORT",
    "ENFORCE_STATUS_TRANSITIONS",
    "TRACKING_RATE_LIMIT",
    "SITE_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults(caplog):
    with caplog.at_level(logging.WARNING, logger="shipping_portal.config"):
        config = load_config()

    assert config.database_url == "sqlite:///instance/portal.db"
    assert config.mail_default_sender == "noreply@globalembrace.example"
    assert config.mail_allowed_sender_domain == "globalembrace.example"
    assert config.enforce_status_transitions is False
    assert config.tracking_rate_limit == "30 per minute"
    assert config.secret_key
    assert "PORTAL_SECRET_KEY" in caplog.text


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PORTAL_DATABASE", "postgresql://portal@db/portal")
    monkeypatch.setenv("PORTAL_SECRET_KEY", "s3cret")
    monkeypatch.setenv("MAIL_DEFAULT_SENDER", "quotes@shipping.example")
    monkeypatch.setenv("MAIL_ENABLED", "false")
    monkeypatch.setenv("MAIL_PORT", "2525")
    monkeypatch.setenv("ENFORCE_STATUS_TRANSITIONS", "yes")
    monkeypatch.setenv("SITE_URL", "https://portal.example/")

    config = load_config()

    assert config.database_url == "postgresql://portal@db/portal"
    assert config.secret_key == "s3cret"
    assert config.mail_allowed_sender_domain == "shipping.example"
    assert config.mail_enabled is False
    assert config.mail_port == 2525
    assert config.enforce_status_transitions is True
    assert config.site_url == "https://portal.example"


def test_allowed_domain_override(monkeypatch):
    monkeypatch.setenv("MAIL_ALLOWED_SENDER_DOMAIN", " Example.ORG ")

    assert load_config().mail_allowed_sender_domain == "example.org"


def test_to_flask_config_keys():
    settings = AppConfig(
        database_url="sqlite://", secret_key="k", csrf_enabled=False
    ).to_flask_config()

    assert settings["SECRET_KEY"] == "k"
    assert settings["WTF_CSRF_ENABLED"] is False
    assert settings["ENFORCE_STATUS_TRANSITIONS"] is False
    assert settings["AUTH_HEADER_USER_ID"] == "X-Auth-User-Id"
    assert settings["RATELIMIT_STORAGE_URI"] == "memory://"
