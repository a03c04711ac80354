from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import or_, select, update

from .common import page_number, paginate, query_str
from ..database import db_session
from ..models import Blog, User
from ..schemas import BlogRead
from ..validation import create_safe_regex, regex_clause

router = APIRouter(prefix="/blog", tags=["blog"])

POSTS_PER_PAGE = 12
RELATED_POSTS = 3


def _author(session, author_id: int) -> Optional[Dict[str, str]]:
    row = session.execute(
        select(User.first_name, User.last_name, User.username).where(User.id == author_id)
    ).first()
    if row is None:
        return None
    return {"firstName": row.first_name, "lastName": row.last_name, "username": row.username}


def _post(session, blog: Blog) -> Dict[str, Any]:
    data = BlogRead.model_validate(blog).model_dump(mode="json")
    data["author"] = _author(session, blog.author_id)
    return data


@router.get("")
def list_posts(request: Request) -> Dict[str, Any]:
    page = page_number(request)
    category = query_str(request, "category")
    search = query_str(request, "search")

    stmt = select(Blog).where(Blog.status == "published")
    if category:
        stmt = stmt.where(Blog.category == category)
    pattern = create_safe_regex(search)
    if pattern is not None:
        stmt = stmt.where(or_(regex_clause(Blog.title, pattern), regex_clause(Blog.content, pattern)))
    stmt = stmt.order_by(Blog.published_at.desc(), Blog.id.desc())

    with db_session() as session:
        blogs, pagination = paginate(session, stmt, page, POSTS_PER_PAGE)
        categories = session.execute(
            select(Blog.category).where(Blog.status == "published").distinct().order_by(Blog.category)
        ).scalars().all()
        return {
            "blogs": [_post(session, b) for b in blogs],
            "categories": list(categories),
            "selectedCategory": category,
            "searchQuery": search,
            **pagination,
        }


@router.get("/{slug}")
def read_post(slug: str) -> Dict[str, Any]:
    with db_session() as session:
        blog = session.execute(
            select(Blog).where(Blog.slug == slug, Blog.status == "published")
        ).scalar_one_or_none()
        if blog is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blog post not found.")

        session.execute(update(Blog).where(Blog.id == blog.id).values(views=Blog.views + 1))
        session.refresh(blog)

        related = session.execute(
            select(Blog)
            .where(Blog.id != blog.id, Blog.category == blog.category, Blog.status == "published")
            .order_by(Blog.published_at.desc())
            .limit(RELATED_POSTS)
        ).scalars().all()
        return {
            "blog": _post(session, blog),
            "relatedBlogs": [_post(session, b) for b in related],
        }
