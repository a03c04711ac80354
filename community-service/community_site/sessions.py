"""
sessions.py — Server-side sessions
==================================
The browser only ever holds a signed, opaque session id.  Everything else
(user id, CSRF secret) lives in the ``web_sessions`` table.

Lifecycle
---------
* Loaded by ``SessionMiddleware`` before any other stage and exposed as
  ``request.state.session``.
* Saved after the response is produced, with the expiry pushed forward on
  every request (24h sliding by default).  An unchanged session is only
  rewritten once its expiry has slipped by ``TOUCH_INTERVAL``.  Sessions
  that never received any data are not stored and no cookie is sent.
* A stored session is only ever updated, never re-inserted: if its record
  was deleted while a request was in flight (logout, deactivation) the
  request's copy is discarded and no cookie is sent for it.
* ``regenerate()`` at login swaps in a brand-new id and drops all prior data,
  ``destroy()`` at logout deletes the record and clears the cookie.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from itsdangerous import BadData, URLSafeTimedSerializer
from sqlalchemy import delete, select
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request

from .database import db_session
from .models import WebSession, utcnow

log = logging.getLogger("community.sessions")

SESSION_SALT = "community.session"
TOUCH_INTERVAL = timedelta(minutes=1)


def _new_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class SessionData:
    id: str = field(default_factory=_new_id)
    user_id: Optional[int] = None
    csrf_secret: Optional[str] = None
    is_new: bool = True
    destroyed: bool = False
    discarded_ids: List[str] = field(default_factory=list)
    expires_at: Optional[datetime] = None
    stored: Optional[Tuple[Optional[int], Optional[str]]] = field(default=None, repr=False)

    @property
    def is_empty(self) -> bool:
        return self.user_id is None and self.csrf_secret is None

    @property
    def changed(self) -> bool:
        return (self.user_id, self.csrf_secret) != self.stored

    def regenerate(self) -> None:
        """Replace this session with a fresh, empty one under a new id."""
        if not self.is_new:
            self.discarded_ids.append(self.id)
        self.id = _new_id()
        self.user_id = None
        self.csrf_secret = None
        self.is_new = True
        self.destroyed = False

    def destroy(self) -> None:
        self.user_id = None
        self.csrf_secret = None
        self.destroyed = True


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SessionStore:
    def __init__(self, max_age_seconds: int) -> None:
        self.max_age = timedelta(seconds=max_age_seconds)

    def load(self, session_id: str) -> Optional[SessionData]:
        with db_session() as s:
            row = s.execute(
                select(WebSession).where(
                    WebSession.id == session_id,
                    WebSession.expires_at > utcnow(),
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return SessionData(
                id=row.id, user_id=row.user_id, csrf_secret=row.csrf_secret, is_new=False,
                expires_at=row.expires_at, stored=(row.user_id, row.csrf_secret),
            )

    def needs_save(self, data: SessionData) -> bool:
        if data.is_new or data.changed or data.expires_at is None:
            return True
        return utcnow() + self.max_age - data.expires_at >= TOUCH_INTERVAL

    def save(self, data: SessionData) -> bool:
        """Write *data*; False when its stored record no longer exists."""
        expires_at = utcnow() + self.max_age
        with db_session() as s:
            if data.is_new:
                s.add(WebSession(
                    id=data.id, user_id=data.user_id,
                    csrf_secret=data.csrf_secret, expires_at=expires_at,
                ))
            else:
                row = s.get(WebSession, data.id)
                if row is None:
                    return False
                row.user_id = data.user_id
                row.csrf_secret = data.csrf_secret
                row.expires_at = expires_at
        data.is_new = False
        data.expires_at = expires_at
        data.stored = (data.user_id, data.csrf_secret)
        return True

    def delete(self, *session_ids: str) -> None:
        if not session_ids:
            return
        with db_session() as s:
            s.execute(delete(WebSession).where(WebSession.id.in_(session_ids)))

    def delete_for_user(self, user_id: int) -> int:
        """Drop every session belonging to *user_id* (deactivated accounts)."""
        with db_session() as s:
            result = s.execute(delete(WebSession).where(WebSession.user_id == user_id))
            return result.rowcount or 0

    def purge_expired(self) -> int:
        with db_session() as s:
            result = s.execute(delete(WebSession).where(WebSession.expires_at <= utcnow()))
            count = result.rowcount or 0
        if count:
            log.info("Purged %d expired session(s)", count)
        return count

    def commit(self, data: SessionData) -> bool:
        """Persist the end-of-request state of *data*.

        Returns True when a record was written and the cookie should be
        (re)issued.  A record deleted mid-request is left deleted.
        """
        self.delete(*data.discarded_ids)
        data.discarded_ids.clear()
        if data.destroyed or data.is_empty:
            if not data.is_new:
                self.delete(data.id)
            return False
        if not self.needs_save(data):
            return False
        if not self.save(data):
            log.info("Session ended during the request; not restoring it")
            return False
        return True


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        secret: str,
        store: SessionStore,
        cookie_name: str = "community.sid",
        secure: bool = False,
    ) -> None:
        super().__init__(app)
        self.serializer = URLSafeTimedSerializer(secret, salt=SESSION_SALT)
        self.store = store
        self.cookie_name = cookie_name
        self.secure = secure

    def _session_id(self, request: Request) -> Optional[str]:
        cookie = request.cookies.get(self.cookie_name)
        if not cookie:
            return None
        try:
            return self.serializer.loads(cookie, max_age=int(self.store.max_age.total_seconds()))
        except BadData:
            log.info("Rejected session cookie with bad signature")
            return None

    async def dispatch(self, request: Request, call_next):
        session_id = self._session_id(request)
        data = None
        if session_id:
            data = await run_in_threadpool(self.store.load, session_id)
        if data is None:
            data = SessionData()
        request.state.session = data

        response = await call_next(request)

        written = await run_in_threadpool(self.store.commit, data)
        if data.destroyed or data.is_empty:
            if self.cookie_name in request.cookies:
                response.delete_cookie(self.cookie_name, path="/")
        elif written:
            response.set_cookie(
                self.cookie_name,
                self.serializer.dumps(data.id),
                max_age=int(self.store.max_age.total_seconds()),
                path="/",
                httponly=True,
                samesite="strict",
                secure=self.secure,
            )

        token = getattr(request.state, "csrf_token", None)
        if token:
            response.headers["X-CSRF-Token"] = token
        return response
