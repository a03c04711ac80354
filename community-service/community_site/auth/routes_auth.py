from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import or_, select

from .core import hash_password, verify_password
from .dependencies import require_auth
from ..csrf import issue_token
from ..database import db_session
from ..models import User, utcnow
from ..rate_limit import rate_limited
from ..schemas import LoginForm, PasswordChangeForm, RegisterForm, UserRead
from ..validation import validate_form

router = APIRouter(prefix="/auth", tags=["auth"])

log = logging.getLogger("community.auth")

DASHBOARD_URL = "/admin/dashboard"


def _start_session(request: Request, user: User) -> str:
    """Swap in a fresh session for *user* and return its first CSRF token."""
    session = request.state.session
    session.regenerate()
    session.user_id = user.id
    request.state.user = user
    return issue_token(request)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.get("/login")
def login_page(request: Request) -> Dict[str, Any]:
    if request.state.user is not None:
        return {"redirect": DASHBOARD_URL}
    return {"page": "login", "title": "ATCC - Admin Login", "csrfToken": request.state.csrf_token}


@router.post("/login", dependencies=[Depends(rate_limited("auth"))])
def login(request: Request) -> Dict[str, Any]:
    form = validate_form(LoginForm, request.state.payload)
    with db_session() as session:
        user = session.execute(
            select(User).where(User.email == str(form.email).lower())
        ).scalar_one_or_none()

        if not user or not verify_password(form.password, user.password_hash):
            log.warning("Failed login for %s", form.email)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                                detail="Invalid email or password.")
        if not user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                                detail="Account is deactivated. Please contact an administrator.")
        user.last_login_at = utcnow()

    token = _start_session(request, user)
    log.info("User %s logged in", user.id)
    return {
        "message": "Login successful",
        "redirect": DASHBOARD_URL,
        "csrfToken": token,
        "user": UserRead.model_validate(user).model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.get("/register")
def register_page(request: Request) -> Dict[str, Any]:
    if request.state.user is not None:
        return {"redirect": DASHBOARD_URL}
    return {"page": "register", "title": "ATCC - Register", "csrfToken": request.state.csrf_token}


@router.post("/register", status_code=201)
def register(request: Request) -> Dict[str, Any]:
    form = validate_form(RegisterForm, request.state.payload)
    email = str(form.email).lower()
    with db_session() as session:
        existing = session.execute(
            select(User.id).where(or_(User.email == email, User.username == form.username))
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email or username already exists.",
            )
        user = User(
            username=form.username,
            email=email,
            first_name=form.first_name,
            last_name=form.last_name,
            password_hash=hash_password(form.password),
            role="author",
            is_active=True,
            last_login_at=utcnow(),
        )
        session.add(user)

    token = _start_session(request, user)
    log.info("Registered user %s (%s)", user.id, user.username)
    return {
        "message": "Registration successful",
        "redirect": DASHBOARD_URL,
        "csrfToken": token,
        "user": UserRead.model_validate(user).model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Logout / password
# ---------------------------------------------------------------------------

@router.post("/logout")
def logout(request: Request) -> Dict[str, Any]:
    user_id = request.state.session.user_id
    request.state.session.destroy()
    request.state.csrf_token = None
    if user_id is not None:
        log.info("User %s logged out", user_id)
    return {"message": "Logged out", "redirect": "/"}


@router.post("/password", dependencies=[Depends(rate_limited("password-reset"))])
def change_password(request: Request, current_user: User = Depends(require_auth)) -> Dict[str, str]:
    form = validate_form(PasswordChangeForm, request.state.payload)
    with db_session() as session:
        user = session.get(User, current_user.id)
        if not verify_password(form.current_password, user.password_hash):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Current password is incorrect.")
        user.password_hash = hash_password(form.new_password)
    log.info("User %s changed password", current_user.id)
    return {"message": "Password updated"}


# ---------------------------------------------------------------------------
# Current user / token
# ---------------------------------------------------------------------------

@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(require_auth)) -> UserRead:
    return UserRead.model_validate(current_user)


@router.get("/csrf")
def csrf_token(request: Request) -> Dict[str, str]:
    return {"csrfToken": request.state.csrf_token}
