"""
repository.py — Writes for content entities
===========================================
Every create/update goes through here so the lifecycle hooks in
``lifecycle.py`` run on each save.

The blog slug check and the insert share one transaction, but two requests
creating the same title can still both pick the same slug.  The loser's
insert fails on the unique index; it is retried in a fresh transaction,
where the uniqueness check now sees the winner and picks the next suffix.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from .database import db_session
from .lifecycle import prepare_blog, prepare_business, prepare_event
from .models import Blog, Business, Event

log = logging.getLogger("community.repository")

SLUG_RETRIES = 5


def _apply(entity, changes: Dict[str, Any]) -> None:
    for key, value in changes.items():
        setattr(entity, key, value)


# ---------------------------------------------------------------------------
# Blogs
# ---------------------------------------------------------------------------

def _save_blog(blog_id: Optional[int], fields: Dict[str, Any]) -> Optional[Blog]:
    last_error: Optional[IntegrityError] = None
    for attempt in range(1, SLUG_RETRIES + 1):
        try:
            with db_session() as s:
                if blog_id is None:
                    blog = Blog(**fields)
                    s.add(blog)
                else:
                    blog = s.get(Blog, blog_id)
                    if blog is None:
                        return None
                    _apply(blog, fields)
                prepare_blog(s, blog)
                s.flush()
            return blog
        except IntegrityError as exc:
            last_error = exc
            log.warning(
                "Slug conflict saving blog %r (attempt %d/%d), retrying",
                fields.get("title"), attempt, SLUG_RETRIES,
            )
    assert last_error is not None
    raise last_error


def create_blog(fields: Dict[str, Any], author_id: int) -> Blog:
    blog = _save_blog(None, {**fields, "author_id": author_id})
    log.info("Blog %s created as %r", blog.id, blog.slug)
    return blog


def update_blog(blog_id: int, changes: Dict[str, Any]) -> Optional[Blog]:
    return _save_blog(blog_id, changes)


def delete_entity(model, entity_id: int) -> bool:
    with db_session() as s:
        entity = s.get(model, entity_id)
        if entity is None:
            return False
        s.delete(entity)
    log.info("Deleted %s %s", model.__tablename__, entity_id)
    return True


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

def create_event(fields: Dict[str, Any], organizer_id: Optional[int]) -> Event:
    with db_session() as s:
        event = Event(**fields, organizer_id=organizer_id)
        prepare_event(event)
        s.add(event)
    log.info("Event %s created with status %s", event.id, event.status)
    return event


def update_event(event_id: int, changes: Dict[str, Any]) -> Optional[Event]:
    with db_session() as s:
        event = s.get(Event, event_id)
        if event is None:
            return None
        _apply(event, changes)
        prepare_event(event)
    return event


# ---------------------------------------------------------------------------
# Businesses
# ---------------------------------------------------------------------------

def create_business(fields: Dict[str, Any], added_by_id: Optional[int]) -> Business:
    with db_session() as s:
        business = Business(**fields, added_by_id=added_by_id)
        prepare_business(business)
        s.add(business)
    log.info("Business %s created: %s", business.id, business.business_name)
    return business


def update_business(business_id: int, changes: Dict[str, Any]) -> Optional[Business]:
    with db_session() as s:
        business = s.get(Business, business_id)
        if business is None:
            return None
        _apply(business, changes)
        prepare_business(business)
    return business
