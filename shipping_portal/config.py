"""Configuration helpers for the shipping portal.

Settings are read from environment variables into :class:`AppConfig`. The
WSGI entry point loads a ``.env`` file first, so local development can keep
overrides out of the shell.

Key settings:

* ``PORTAL_DATABASE``: SQLAlchemy URL. Defaults to a SQLite file under
  ``instance/``.
* ``PORTAL_SECRET_KEY``: Secures sessions and CSRF tokens. A one-time key is
  generated with a warning when unset.
* ``MAIL_*`` and ``SUPPORT_EMAIL``: SMTP relay and notification recipients.
* ``ENFORCE_STATUS_TRANSITIONS``: Rejects backwards or post-terminal status
  changes when enabled.
* ``RATELIMIT_*`` and ``TRACKING_RATE_LIMIT``: Limits enforced by
  :mod:`flask_limiter`.
* ``AUTH_HEADER_*``: Request headers carrying the identity supplied by the
  upstream authentication proxy.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from secrets import token_urlsafe
from typing import Any, Dict, Optional

TRUE_VALUES = {"true", "1", "yes", "y", "on"}

DEFAULT_DB_PATH = Path("instance") / "portal.db"


def _env_flag(name: str, default: bool) -> bool:
    """Return a boolean parsed from the environment variable ``name``."""

    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _resolve_secret_key() -> str:
    """Return the configured secret key or generate a one-time value."""

    configured = os.getenv("PORTAL_SECRET_KEY")
    if configured:
        return configured

    logging.getLogger("shipping_portal.config").warning(
        "PORTAL_SECRET_KEY environment variable is not set; generated a one-time key."
    )
    return token_urlsafe(32)


def _resolve_mail_allowed_sender_domain(default_sender: str) -> str:
    """Return the domain enforced for outbound mail senders.

    Args:
        default_sender: Email address configured as ``MAIL_DEFAULT_SENDER``.

    Returns:
        str: Lowercase domain, taken from ``MAIL_ALLOWED_SENDER_DOMAIN`` when
        set and otherwise from the domain portion of ``default_sender``.
    """

    override = os.getenv("MAIL_ALLOWED_SENDER_DOMAIN")
    if override is not None:
        return override.strip().lower()

    if "@" not in default_sender:
        return ""

    return default_sender.split("@", 1)[1].strip().lower()


@dataclass(slots=True)
class AppConfig:
    """Settings loaded from environment variables."""

    database_url: str
    secret_key: str
    mail_server: str = "localhost"
    mail_port: int = 587
    mail_use_tls: bool = True
    mail_use_ssl: bool = False
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_default_sender: str = "noreply@globalembrace.example"
    mail_allowed_sender_domain: str = ""
    mail_enabled: bool = True
    mail_rate_limit_per_recipient_per_day: int = 25
    support_email: str = "support@globalembrace.example"
    site_url: str = "http://localhost:5000"
    enforce_status_transitions: bool = False
    ratelimit_default: str = "200 per day;50 per hour"
    ratelimit_storage_uri: str = "memory://"
    ratelimit_enabled: bool = True
    tracking_rate_limit: str = "30 per minute"
    auth_header_user_id: str = "X-Auth-User-Id"
    auth_header_email: str = "X-Auth-User-Email"
    auth_header_role: str = "X-Auth-User-Role"
    csrf_enabled: bool = True

    def to_flask_config(self) -> Dict[str, Any]:
        """Return the settings keyed the way Flask extensions expect them."""

        return {
            "SECRET_KEY": self.secret_key,
            "MAIL_SERVER": self.mail_server,
            "MAIL_PORT": self.mail_port,
            "MAIL_USE_TLS": self.mail_use_tls,
            "MAIL_USE_SSL": self.mail_use_ssl,
            "MAIL_USERNAME": self.mail_username,
            "MAIL_PASSWORD": self.mail_password,
            "MAIL_DEFAULT_SENDER": self.mail_default_sender,
            "MAIL_ALLOWED_SENDER_DOMAIN": self.mail_allowed_sender_domain,
            "MAIL_ENABLED": self.mail_enabled,
            "MAIL_RATE_LIMIT_PER_RECIPIENT_PER_DAY": (
                self.mail_rate_limit_per_recipient_per_day
            ),
            "SUPPORT_EMAIL": self.support_email,
            "SITE_URL": self.site_url,
            "ENFORCE_STATUS_TRANSITIONS": self.enforce_status_transitions,
            "RATELIMIT_DEFAULT": self.ratelimit_default,
            "RATELIMIT_STORAGE_URI": self.ratelimit_storage_uri,
            "RATELIMIT_ENABLED": self.ratelimit_enabled,
            "TRACKING_RATE_LIMIT": self.tracking_rate_limit,
            "AUTH_HEADER_USER_ID": self.auth_header_user_id,
            "AUTH_HEADER_EMAIL": self.auth_header_email,
            "AUTH_HEADER_ROLE": self.auth_header_role,
            "WTF_CSRF_ENABLED": self.csrf_enabled,
        }


def load_config() -> AppConfig:
    """Create an :class:`AppConfig` instance from environment variables."""

    database = os.getenv("PORTAL_DATABASE")
    if not database:
        DEFAULT_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        database = "sqlite:///" + str(DEFAULT_DB_PATH)

    default_sender = os.getenv("MAIL_DEFAULT_SENDER", "noreply@globalembrace.example")
    return AppConfig(
        database_url=database,
        secret_key=_resolve_secret_key(),
        mail_server=os.getenv("MAIL_SERVER", "localhost"),
        mail_port=_env_int("MAIL_PORT", 587),
        mail_use_tls=_env_flag("MAIL_USE_TLS", True),
        mail_use_ssl=_env_flag("MAIL_USE_SSL", False),
        mail_username=os.getenv("MAIL_USERNAME"),
        mail_password=os.getenv("MAIL_PASSWORD"),
        mail_default_sender=default_sender,
        mail_allowed_sender_domain=_resolve_mail_allowed_sender_domain(default_sender),
        mail_enabled=_env_flag("MAIL_ENABLED", True),
        mail_rate_limit_per_recipient_per_day=_env_int(
            "MAIL_RATE_LIMIT_PER_RECIPIENT_PER_DAY", 25
        ),
        support_email=os.getenv("SUPPORT_EMAIL", "support@globalembrace.example"),
        site_url=os.getenv("SITE_URL", "http://localhost:5000").rstrip("/"),
        enforce_status_transitions=_env_flag("ENFORCE_STATUS_TRANSITIONS", False),
        ratelimit_default=os.getenv("RATELIMIT_DEFAULT", "200 per day;50 per hour"),
        ratelimit_storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
        ratelimit_enabled=_env_flag("RATELIMIT_ENABLED", True),
        tracking_rate_limit=os.getenv("TRACKING_RATE_LIMIT", "30 per minute"),
        auth_header_user_id=os.getenv("AUTH_HEADER_USER_ID", "X-Auth-User-Id"),
        auth_header_email=os.getenv("AUTH_HEADER_EMAIL", "X-Auth-User-Email"),
        auth_header_role=os.getenv("AUTH_HEADER_ROLE", "X-Auth-User-Role"),
        csrf_enabled=_env_flag("WTF_CSRF_ENABLED", True),
    )


__all__ = ["AppConfig", "load_config"]
