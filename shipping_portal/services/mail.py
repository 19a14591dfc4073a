"""Outbound email transport and safety checks."""

from __future__ import annotations

import smtplib
from datetime import timedelta
from email.message import EmailMessage
from typing import Optional

from flask import current_app

from ..database import utcnow
from ..errors import NotificationError, PersistenceError
from ..repositories import NotificationLogRepository


class MailRateLimitError(NotificationError):
    """Raised when a recipient has already received too many emails today."""


def _normalise_email(value: str) -> str:
    return (value or "").strip().lower()


def validate_sender_domain(sender: str) -> None:
    """Ensure ``sender`` belongs to the configured allowed domain.

    Raises:
        NotificationError: When the sender domain violates
            ``MAIL_ALLOWED_SENDER_DOMAIN``.
    """

    allowed = (current_app.config.get("MAIL_ALLOWED_SENDER_DOMAIN") or "").strip().lower()
    if not allowed:
        return
    if "@" not in sender:
        raise NotificationError("MAIL_DEFAULT_SENDER must include a domain portion")
    domain = sender.split("@", 1)[1].strip().lower()
    if domain != allowed:
        raise NotificationError(
            f"Sender domain '{domain}' is not permitted; expected '{allowed}'."
        )


def enforce_recipient_rate_limit(
    logs: NotificationLogRepository, recipient: str
) -> None:
    """Raise :class:`MailRateLimitError` when ``recipient`` hit the daily cap.

    The count comes from ``sent`` rows in ``notification_logs`` over the last
    24 hours. A limit of ``0`` disables the check.
    """

    limit = int(current_app.config.get("MAIL_RATE_LIMIT_PER_RECIPIENT_PER_DAY", 0) or 0)
    if limit <= 0:
        return
    try:
        count = logs.count_sent_since(_normalise_email(recipient), utcnow() - timedelta(days=1))
    except PersistenceError as exc:
        current_app.logger.warning("Failed to enforce mail rate limit: %s", exc)
        return
    if count >= limit:
        raise MailRateLimitError("Rate limit exceeded: per recipient per day.")


def send_email(
    to: str,
    subject: str,
    body: str,
    *,
    html: Optional[str] = None,
    logs: Optional[NotificationLogRepository] = None,
) -> bool:
    """Send an email through the configured SMTP relay.

    Args:
        to: Recipient email address.
        subject: Message subject line.
        body: Plain-text body.
        html: Optional HTML alternative.
        logs: Repository used for the per-recipient rate limit. The limit is
            skipped when omitted.

    Returns:
        bool: ``True`` when the message was handed to the relay, ``False``
        when outbound mail is disabled with ``MAIL_ENABLED``.

    Raises:
        NotificationError: For sender policy, rate limit or SMTP failures.
    """

    config = current_app.config
    if not config.get("MAIL_ENABLED", True):
        current_app.logger.info("Mail disabled; skipped '%s' to %s", subject, to)
        return False

    sender = config.get("MAIL_DEFAULT_SENDER", "")
    validate_sender_domain(sender)
    if logs is not None:
        enforce_recipient_rate_limit(logs, to)

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    server = config.get("MAIL_SERVER", "localhost")
    use_tls = config.get("MAIL_USE_TLS")
    use_ssl = config.get("MAIL_USE_SSL")
    username = config.get("MAIL_USERNAME")
    password = config.get("MAIL_PASSWORD")
    if use_ssl:
        smtp_cls = smtplib.SMTP_SSL
        default_port = 465
    else:
        smtp_cls = smtplib.SMTP
        default_port = 587 if use_tls else 25
    port = config.get("MAIL_PORT") or default_port

    try:
        with smtp_cls(server, port) as smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationError(f"SMTP delivery to {to} failed: {exc}") from exc
    return True


__all__ = [
    "MailRateLimitError",
    "enforce_recipient_rate_limit",
    "send_email",
    "validate_sender_domain",
]
