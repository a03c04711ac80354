"""
routes_admin.py — Blog management in the admin panel
====================================================
Authors see and edit only their own posts; admins see everything.  Deleting
is limited to admins and editors (editors only their own posts).
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, select

from .common import page_number, paginate, query_str
from ..auth.dependencies import RoleGate
from ..database import db_session
from ..models import BLOG_CATEGORIES, BLOG_STATUSES, Blog, User
from ..rate_limit import rate_limited
from ..repository import create_blog, delete_entity, update_blog
from ..schemas import BlogForm, BlogRead
from ..validation import validate_form

router = APIRouter(prefix="/admin", tags=["admin"])

log = logging.getLogger("community.admin")

require_panel = RoleGate(["admin", "editor", "author"])
require_editor = RoleGate(["admin", "editor"])

BLOGS_PER_PAGE = 10


def _owned_blog(session, blog_id: int, user: User) -> Blog:
    """Blog *blog_id* if *user* may manage it, else 404."""
    stmt = select(Blog).where(Blog.id == blog_id)
    if user.role != "admin":
        stmt = stmt.where(Blog.author_id == user.id)
    blog = session.execute(stmt).scalar_one_or_none()
    if blog is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog not found.")
    return blog


# ---------------------------------------------------------------------------
# Dashboard / listing
# ---------------------------------------------------------------------------

@router.get("/dashboard", dependencies=[Depends(rate_limited("admin"))])
def dashboard(user: User = Depends(require_panel)) -> Dict[str, Any]:
    with db_session() as session:
        def count(*criteria) -> int:
            return session.execute(
                select(func.count(Blog.id)).where(Blog.author_id == user.id, *criteria)
            ).scalar_one()

        recent = session.execute(
            select(Blog).where(Blog.author_id == user.id)
            .order_by(Blog.updated_at.desc()).limit(5)
        ).scalars().all()
        return {
            "title": "ATCC - Admin Dashboard",
            "stats": {
                "totalBlogs": count(),
                "publishedBlogs": count(Blog.status == "published"),
                "draftBlogs": count(Blog.status == "draft"),
            },
            "recentBlogs": [BlogRead.model_validate(b).model_dump(mode="json") for b in recent],
        }


@router.get("/blogs")
def list_blogs(request: Request, user: User = Depends(require_panel)) -> Dict[str, Any]:
    page = page_number(request)
    status_filter = query_str(request, "status")

    stmt = select(Blog).order_by(Blog.updated_at.desc())
    if user.role != "admin":
        stmt = stmt.where(Blog.author_id == user.id)
    if status_filter in BLOG_STATUSES:
        stmt = stmt.where(Blog.status == status_filter)

    with db_session() as session:
        blogs, pagination = paginate(session, stmt, page, BLOGS_PER_PAGE)
        return {
            "blogs": [BlogRead.model_validate(b).model_dump(mode="json") for b in blogs],
            "selectedStatus": status_filter,
            **pagination,
        }


# ---------------------------------------------------------------------------
# Create / edit / delete
# ---------------------------------------------------------------------------

@router.get("/blog/new")
def new_blog_form(request: Request, user: User = Depends(require_panel)) -> Dict[str, Any]:
    return {
        "title": "ATCC - New Blog Post",
        "categories": list(BLOG_CATEGORIES),
        "csrfToken": request.state.csrf_token,
    }


@router.post("/blog/new", status_code=201, dependencies=[Depends(rate_limited("content-create"))])
def new_blog(request: Request, user: User = Depends(require_panel)) -> Dict[str, Any]:
    form = validate_form(BlogForm, request.state.payload)
    blog = create_blog(form.to_fields(), author_id=user.id)
    return {"blog": BlogRead.model_validate(blog).model_dump(mode="json"), "redirect": "/admin/blogs"}


@router.get("/blog/{blog_id}/edit")
def edit_blog_form(request: Request, blog_id: int, user: User = Depends(require_panel)) -> Dict[str, Any]:
    with db_session() as session:
        blog = _owned_blog(session, blog_id, user)
        return {
            "title": "ATCC - Edit Blog Post",
            "blog": BlogRead.model_validate(blog).model_dump(mode="json"),
            "categories": list(BLOG_CATEGORIES),
            "csrfToken": request.state.csrf_token,
        }


@router.post("/blog/{blog_id}/edit", dependencies=[Depends(rate_limited("admin"))])
def edit_blog(request: Request, blog_id: int, user: User = Depends(require_panel)) -> Dict[str, Any]:
    form = validate_form(BlogForm, request.state.payload)
    with db_session() as session:
        _owned_blog(session, blog_id, user)
    blog = update_blog(blog_id, form.to_fields())
    if blog is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog not found.")
    return {"blog": BlogRead.model_validate(blog).model_dump(mode="json"), "redirect": "/admin/blogs"}


@router.post("/blog/{blog_id}/delete", dependencies=[Depends(rate_limited("admin"))])
def delete_blog(blog_id: int, user: User = Depends(require_editor)) -> Dict[str, Any]:
    with db_session() as session:
        _owned_blog(session, blog_id, user)
    delete_entity(Blog, blog_id)
    log.info("User %s deleted blog %s", user.id, blog_id)
    return {"message": "Blog deleted", "redirect": "/admin/blogs"}
