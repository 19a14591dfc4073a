"""Identity supplied by the upstream authentication proxy.

The portal does not manage accounts or sessions. Every request carries the
caller's id, email and role in headers set by the proxy; the request loader
turns them into a :class:`PortalUser` for :mod:`flask_login`.
"""

from __future__ import annotations

from functools import wraps
from typing import Callable, Optional

from flask import Request, abort, current_app
from flask_login import LoginManager, UserMixin, current_user

ADMIN_ROLE = "admin"
CUSTOMER_ROLE = "customer"

login_manager = LoginManager()


class PortalUser(UserMixin):
    """Authenticated caller as described by the identity headers."""

    def __init__(self, user_id: str, email: str = "", role: str = CUSTOMER_ROLE):
        self.id = user_id
        self.email = email
        self.role = role or CUSTOMER_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def __repr__(self) -> str:
        return f"PortalUser(id={self.id!r}, role={self.role!r})"


@login_manager.request_loader
def load_user_from_request(request: Request) -> Optional[PortalUser]:
    """Build a :class:`PortalUser` from the configured identity headers.

    Returns:
        Optional[PortalUser]: ``None`` when the user id header is missing,
        leaving the request anonymous.
    """

    config = current_app.config
    user_id = (request.headers.get(config["AUTH_HEADER_USER_ID"]) or "").strip()
    if not user_id:
        return None
    email = (request.headers.get(config["AUTH_HEADER_EMAIL"]) or "").strip()
    role = (request.headers.get(config["AUTH_HEADER_ROLE"]) or "").strip().lower()
    return PortalUser(user_id, email=email, role=role)


def roles_required(*roles: str) -> Callable:
    """Protect a view based on :data:`flask_login.current_user`'s role.

    Anonymous callers receive ``401``; authenticated callers whose role is not
    in ``roles`` receive ``403``.

    Args:
        *roles: Acceptable values for :attr:`PortalUser.role`.

    Returns:
        Callable: Decorator enforcing the role restriction.
    """

    allowed_roles = set(roles)

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if allowed_roles and getattr(current_user, "role", None) not in allowed_roles:
                abort(403)
            return view(*args, **kwargs)

        return wrapped

    return decorator


def admin_required(view: Callable) -> Callable:
    return roles_required(ADMIN_ROLE)(view)


__all__ = [
    "ADMIN_ROLE",
    "PortalUser",
    "admin_required",
    "login_manager",
    "roles_required",
]
