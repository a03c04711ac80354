"""
lifecycle.py — Pre-persist hooks for content entities
=====================================================
Derived fields are recomputed immediately before an entity is written.
The repository layer calls these explicitly inside the write transaction.

Blog      slug (unique, from title), published_at, excerpt
Event     status from start/end vs. the current time
Business  normalised contact email and services list

Event status is only recomputed on save, so a stored status can be stale
until the next write.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Blog, Business, Event, split_csv, utcnow

log = logging.getLogger("community.lifecycle")

EXCERPT_LENGTH = 200
FALLBACK_SLUG = "post"

_SLUG_STRIP = re.compile(r"[^a-z0-9 -]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


# ---------------------------------------------------------------------------
# Blog
# ---------------------------------------------------------------------------

def slugify(title: str) -> str:
    slug = _SLUG_STRIP.sub("", title.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def slug_taken(session: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(Blog.id).where(Blog.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(Blog.id != exclude_id)
    return session.execute(stmt.limit(1)).first() is not None


def unique_slug(session: Session, base: str, exclude_id: Optional[int] = None) -> str:
    """First of ``base``, ``base-1``, ``base-2`` ... not used by another blog."""
    slug = base
    counter = 1
    while slug_taken(session, slug, exclude_id):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def make_excerpt(content: str) -> str:
    if len(content) <= EXCERPT_LENGTH:
        return content
    return content[:EXCERPT_LENGTH] + "..."


def prepare_blog(session: Session, blog: Blog, now: Optional[datetime] = None) -> Blog:
    now = now or utcnow()
    if not blog.slug and blog.title:
        base = slugify(blog.title) or FALLBACK_SLUG
        blog.slug = unique_slug(session, base, blog.id)
    if blog.status == "published" and blog.published_at is None:
        blog.published_at = now
    if not blog.excerpt and blog.content:
        blog.excerpt = make_excerpt(blog.content)
    return blog


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------

def derive_event_status(start: datetime, end: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    if end < now:
        return "completed"
    if start <= now <= end:
        return "ongoing"
    return "upcoming"


def prepare_event(event: Event, now: Optional[datetime] = None) -> Event:
    # Cancellation is a manual decision; dates never override it
    if event.status != "cancelled":
        event.status = derive_event_status(event.start_date, event.end_date, now)
    return event


# ---------------------------------------------------------------------------
# Business
# ---------------------------------------------------------------------------

def prepare_business(business: Business) -> Business:
    if business.email:
        business.email = business.email.strip().lower()
    business.services = ",".join(s.strip() for s in split_csv(business.services) if s.strip())
    return business
