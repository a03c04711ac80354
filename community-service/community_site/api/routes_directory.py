from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import or_, select

from .common import page_number, paginate, query_str
from ..auth.dependencies import require_admin, require_staff
from ..database import db_session
from ..models import BUSINESS_CATEGORIES, Business, User
from ..repository import create_business, delete_entity, update_business
from ..schemas import BusinessForm, BusinessRead
from ..validation import create_safe_regex, regex_clause, validate_form

router = APIRouter(prefix="/directory", tags=["directory"])

log = logging.getLogger("community.directory")

LISTINGS_PER_PAGE = 20
RELATED_LISTINGS = 4
ADMIN_LISTINGS_PER_PAGE = 15


def _dump(business: Business) -> Dict[str, Any]:
    return BusinessRead.model_validate(business).model_dump(mode="json")


def _distinct(session, column, *criteria):
    return list(session.execute(
        select(column).where(*criteria).distinct().order_by(column)
    ).scalars().all())


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Business not found.")


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

@router.get("")
def list_businesses(request: Request) -> Dict[str, Any]:
    page = page_number(request)
    filters = {name: query_str(request, name) for name in ("category", "city", "province", "search")}

    stmt = select(Business).where(Business.is_active.is_(True))
    if filters["category"]:
        stmt = stmt.where(Business.category == filters["category"])
    city = create_safe_regex(filters["city"])
    if city is not None:
        stmt = stmt.where(regex_clause(Business.city, city))
    if filters["province"]:
        stmt = stmt.where(Business.province == filters["province"])
    search = create_safe_regex(filters["search"])
    if search is not None:
        stmt = stmt.where(or_(
            regex_clause(Business.business_name, search),
            regex_clause(Business.description, search),
            regex_clause(Business.services, search),
        ))
    stmt = stmt.order_by(Business.is_featured.desc(), Business.business_name.asc())

    with db_session() as session:
        businesses, pagination = paginate(session, stmt, page, LISTINGS_PER_PAGE)
        active = Business.is_active.is_(True)
        return {
            "businesses": [_dump(b) for b in businesses],
            "categories": _distinct(session, Business.category, active),
            "cities": _distinct(session, Business.city, active),
            "provinces": _distinct(session, Business.province, active),
            "filters": filters,
            **pagination,
        }


@router.get("/{business_id}")
def read_business(business_id: int) -> Dict[str, Any]:
    with db_session() as session:
        business = session.execute(
            select(Business).where(Business.id == business_id, Business.is_active.is_(True))
        ).scalar_one_or_none()
        if business is None:
            raise _not_found()
        related = session.execute(
            select(Business)
            .where(
                Business.id != business.id,
                Business.category == business.category,
                Business.is_active.is_(True),
            )
            .order_by(Business.is_featured.desc(), Business.business_name.asc())
            .limit(RELATED_LISTINGS)
        ).scalars().all()
        return {"business": _dump(business), "relatedBusinesses": [_dump(b) for b in related]}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@router.get("/admin/manage")
def manage_businesses(request: Request, user: User = Depends(require_staff)) -> Dict[str, Any]:
    page = page_number(request)
    status_filter = query_str(request, "status")
    category = query_str(request, "category")

    stmt = select(Business).order_by(Business.created_at.desc())
    if status_filter:
        stmt = stmt.where(Business.is_active.is_(status_filter == "active"))
    if category:
        stmt = stmt.where(Business.category == category)

    with db_session() as session:
        businesses, pagination = paginate(session, stmt, page, ADMIN_LISTINGS_PER_PAGE)
        return {
            "businesses": [_dump(b) for b in businesses],
            "categories": list(BUSINESS_CATEGORIES),
            "filters": {"status": status_filter, "category": category},
            **pagination,
        }


@router.post("/admin/new", status_code=201)
def new_business(request: Request, user: User = Depends(require_staff)) -> Dict[str, Any]:
    form = validate_form(BusinessForm, request.state.payload)
    business = create_business(form.to_fields(), added_by_id=user.id)
    return {"business": _dump(business), "redirect": "/directory/admin/manage"}


@router.get("/admin/{business_id}/edit")
def edit_business_form(request: Request, business_id: int, user: User = Depends(require_staff)) -> Dict[str, Any]:
    with db_session() as session:
        business = session.get(Business, business_id)
        if business is None:
            raise _not_found()
        return {
            "business": _dump(business),
            "categories": list(BUSINESS_CATEGORIES),
            "csrfToken": request.state.csrf_token,
        }


@router.post("/admin/{business_id}/edit")
def edit_business(request: Request, business_id: int, user: User = Depends(require_staff)) -> Dict[str, Any]:
    form = validate_form(BusinessForm, request.state.payload)
    business = update_business(business_id, form.to_fields())
    if business is None:
        raise _not_found()
    return {"business": _dump(business), "redirect": "/directory/admin/manage"}


@router.post("/admin/{business_id}/toggle-status")
def toggle_business(business_id: int, user: User = Depends(require_admin)) -> Dict[str, Any]:
    with db_session() as session:
        business = session.get(Business, business_id)
        if business is None:
            raise _not_found()
        business.is_active = not business.is_active
        active = business.is_active
    log.info("User %s set business %s active=%s", user.id, business_id, active)
    return {"message": f"Business {'activated' if active else 'deactivated'}", "isActive": active}


@router.post("/admin/{business_id}/delete")
def delete_business(business_id: int, user: User = Depends(require_admin)) -> Dict[str, Any]:
    if not delete_entity(Business, business_id):
        raise _not_found()
    return {"message": "Business deleted", "redirect": "/directory/admin/manage"}
