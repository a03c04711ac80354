"""
dependencies.py — Session/role gate
===================================
``identify_user``  best-effort: attaches the signed-in user (or None) to
                   ``request.state.user``; never rejects.
``require_auth``   rejects anonymous requests with LoginRequired.
``RoleGate``       rejects users whose role is not in the allow-list, or whose
                   account is deactivated, with Forbidden.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from ..database import db_session
from ..errors import Forbidden, LoginRequired
from ..models import User

log = logging.getLogger("community.auth")


def prefers_json(request: Request) -> bool:
    """API clients get JSON errors; browsers get redirects and pages."""
    if request.url.path.startswith("/api/"):
        return True
    accept = request.headers.get("accept", "")
    return "application/json" in accept and "text/html" not in accept


def load_user(user_id: int) -> Optional[User]:
    with db_session() as s:
        return s.get(User, user_id)


# ---------------------------------------------------------------------------
# Identify / authenticate
# ---------------------------------------------------------------------------

def identify_user(request: Request) -> Optional[User]:
    """App-level dependency: resolve the session's user if there is one."""
    request.state.user = None
    user_id = request.state.session.user_id
    if user_id is None:
        return None
    try:
        user = load_user(user_id)
    except SQLAlchemyError:
        log.exception("Could not load user %s for session", user_id)
        return None
    request.state.user = user
    return user


def require_auth(request: Request) -> User:
    user: Optional[User] = getattr(request.state, "user", None)
    if request.state.session.user_id is None or user is None:
        raise LoginRequired()
    return user


# ---------------------------------------------------------------------------
# Role guards
# ---------------------------------------------------------------------------

class RoleGate:
    """Dependency allowing only active users whose role is in *roles*."""

    def __init__(self, roles: Iterable[str]) -> None:
        self.roles = frozenset(roles)

    def __call__(self, request: Request, current_user: User = Depends(require_auth)) -> User:
        if current_user.role not in self.roles or not current_user.is_active:
            log.warning(
                "Forbidden: user %s (role=%s, active=%s) on %s %s",
                current_user.id, current_user.role, current_user.is_active,
                request.method, request.url.path,
            )
            raise Forbidden()
        return current_user

    def __repr__(self) -> str:
        return f"RoleGate({sorted(self.roles)})"


require_admin = RoleGate(["admin"])
require_staff = RoleGate(["admin", "editor"])
