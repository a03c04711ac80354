from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select

from .common import page_number, paginate, query_str
from ..auth.dependencies import require_admin, require_staff
from ..database import db_session
from ..models import EVENT_CATEGORIES, EVENT_STATUSES, Event, User, utcnow
from ..repository import create_event, delete_entity, update_event
from ..schemas import EventForm, EventRead
from ..validation import validate_form

router = APIRouter(prefix="/events", tags=["events"])

log = logging.getLogger("community.events")

EVENTS_PER_SECTION = 6
RELATED_EVENTS = 3
EVENTS_PER_PAGE = 10


def _dump(event: Event) -> Dict[str, Any]:
    return EventRead.model_validate(event).model_dump(mode="json")


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

@router.get("")
def list_events(request: Request) -> Dict[str, Any]:
    now = utcnow()
    category = query_str(request, "category")

    # Stored status is only refreshed on save, so select by time
    upcoming = select(Event).where(Event.end_date >= now, Event.status != "cancelled")
    past = select(Event).where(Event.end_date < now, Event.status != "cancelled")
    if category:
        upcoming = upcoming.where(Event.category == category)
        past = past.where(Event.category == category)

    with db_session() as session:
        upcoming_events = session.execute(
            upcoming.order_by(Event.start_date.asc()).limit(EVENTS_PER_SECTION)
        ).scalars().all()
        past_events = session.execute(
            past.order_by(Event.start_date.desc()).limit(EVENTS_PER_SECTION)
        ).scalars().all()
        return {
            "upcomingEvents": [_dump(e) for e in upcoming_events],
            "pastEvents": [_dump(e) for e in past_events],
            "categories": list(EVENT_CATEGORIES),
            "selectedCategory": category,
        }


@router.get("/{event_id}")
def read_event(event_id: int) -> Dict[str, Any]:
    with db_session() as session:
        event = session.get(Event, event_id)
        if event is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found.")
        related = session.execute(
            select(Event)
            .where(
                Event.id != event.id,
                Event.category == event.category,
                Event.end_date >= utcnow(),
                Event.status != "cancelled",
            )
            .order_by(Event.start_date.asc())
            .limit(RELATED_EVENTS)
        ).scalars().all()
        return {"event": _dump(event), "relatedEvents": [_dump(e) for e in related]}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@router.get("/admin/manage")
def manage_events(request: Request, user: User = Depends(require_staff)) -> Dict[str, Any]:
    page = page_number(request)
    status_filter = query_str(request, "status")

    stmt = select(Event).order_by(Event.start_date.desc())
    if status_filter in EVENT_STATUSES:
        stmt = stmt.where(Event.status == status_filter)

    with db_session() as session:
        events, pagination = paginate(session, stmt, page, EVENTS_PER_PAGE)
        return {
            "events": [_dump(e) for e in events],
            "selectedStatus": status_filter,
            **pagination,
        }


@router.post("/admin/new", status_code=201)
def new_event(request: Request, user: User = Depends(require_staff)) -> Dict[str, Any]:
    form = validate_form(EventForm, request.state.payload)
    event = create_event(form.to_fields(), organizer_id=user.id)
    return {"event": _dump(event), "redirect": "/events/admin/manage"}


@router.get("/admin/{event_id}/edit")
def edit_event_form(request: Request, event_id: int, user: User = Depends(require_staff)) -> Dict[str, Any]:
    with db_session() as session:
        event = session.get(Event, event_id)
        if event is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found.")
        return {"event": _dump(event), "csrfToken": request.state.csrf_token}


@router.post("/admin/{event_id}/edit")
def edit_event(request: Request, event_id: int, user: User = Depends(require_staff)) -> Dict[str, Any]:
    form = validate_form(EventForm, request.state.payload)
    event = update_event(event_id, form.to_fields())
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found.")
    log.info("User %s updated event %s (status %s)", user.id, event_id, event.status)
    return {"event": _dump(event), "redirect": "/events/admin/manage"}


@router.post("/admin/{event_id}/delete")
def delete_event(event_id: int, user: User = Depends(require_admin)) -> Dict[str, Any]:
    if not delete_entity(Event, event_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found.")
    return {"message": "Event deleted", "redirect": "/events/admin/manage"}
