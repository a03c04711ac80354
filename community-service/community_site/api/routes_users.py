from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select

from .common import page_number, paginate, query_str
from ..auth.dependencies import require_admin
from ..database import db_session
from ..models import ROLES, User
from ..schemas import RoleUpdateForm, UserRead
from ..validation import validate_form

router = APIRouter(prefix="/admin/users", tags=["users"])

log = logging.getLogger("community.users")

USERS_PER_PAGE = 15


@router.get("")
def list_users(request: Request, admin: User = Depends(require_admin)) -> Dict[str, Any]:
    page = page_number(request)
    role = query_str(request, "role")
    status_filter = query_str(request, "status")

    stmt = select(User).order_by(User.created_at.desc())
    if role in ROLES:
        stmt = stmt.where(User.role == role)
    if status_filter == "active":
        stmt = stmt.where(User.is_active.is_(True))
    elif status_filter == "inactive":
        stmt = stmt.where(User.is_active.is_(False))

    with db_session() as session:
        users, pagination = paginate(session, stmt, page, USERS_PER_PAGE)
        return {
            "users": [UserRead.model_validate(u).model_dump(mode="json") for u in users],
            "roles": list(ROLES),
            "selectedRole": role,
            "selectedStatus": status_filter,
            **pagination,
        }


@router.post("/{user_id}/role")
def update_role(request: Request, user_id: int, admin: User = Depends(require_admin)) -> Dict[str, Any]:
    form = validate_form(RoleUpdateForm, request.state.payload)
    with db_session() as session:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        user.role = form.role
        result = UserRead.model_validate(user)
    log.info("Admin %s set role of user %s to %s", admin.id, user_id, form.role)
    return {"message": f"User role updated to {form.role}", "user": result.model_dump(mode="json")}


@router.post("/{user_id}/toggle-status")
def toggle_status(request: Request, user_id: int, admin: User = Depends(require_admin)) -> Dict[str, Any]:
    if user_id == admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="You cannot deactivate your own account.")
    with db_session() as session:
        user = session.get(User, user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        user.is_active = not user.is_active
        result = UserRead.model_validate(user)

    if not result.is_active:
        dropped = request.app.state.session_store.delete_for_user(user_id)
        log.info("Deactivated user %s, ended %d session(s)", user_id, dropped)
    else:
        log.info("Reactivated user %s", user_id)
    state = "activated" if result.is_active else "deactivated"
    return {"message": f"User {state} successfully", "user": result.model_dump(mode="json")}
