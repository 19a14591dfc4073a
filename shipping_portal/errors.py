"""Exception hierarchy shared by the portal's services and blueprints."""

from __future__ import annotations

from typing import Mapping, Optional


class PortalError(Exception):
    """Base class for errors raised by the shipping portal."""


class ValidationError(PortalError):
    """Raised when user supplied input fails validation.

    Attributes:
        errors: Mapping of field name to a human-readable message. Blueprints
            render the messages next to the offending inputs; the exception is
            never logged as a system fault.
    """

    def __init__(self, errors: Mapping[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(message or "; ".join(self.errors.values()) or "Invalid input")

    @property
    def fields(self) -> list[str]:
        """Return the names of the invalid fields in submission order."""

        return list(self.errors)

    @property
    def messages(self) -> list[str]:
        return list(self.errors.values())


class StatusTransitionError(ValidationError):
    """Raised when transition hardening rejects a status change."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            {"status": f"Cannot move a shipment from '{current}' to '{requested}'."}
        )


class NotFoundError(PortalError):
    """Raised when a quote, shipment or tracking number does not exist."""


class PersistenceError(PortalError):
    """Raised when a storage operation fails.

    The originating action is left in its pre-action state so the user may
    retry. The portal never retries automatically.
    """


class NotificationError(PortalError):
    """Raised by the mail transport when an email cannot be dispatched.

    Callers in :mod:`shipping_portal.services.notifications` always swallow
    this error after logging it.
    """


__all__ = [
    "PortalError",
    "ValidationError",
    "StatusTransitionError",
    "NotFoundError",
    "PersistenceError",
    "NotificationError",
]
