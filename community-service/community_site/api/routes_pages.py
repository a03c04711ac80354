from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from ..schemas import UserRead

router = APIRouter(tags=["pages"])

SITE_NAME = "Association of Tamil Canadian Community"


def _page(request: Request, page: str, title: str) -> Dict[str, Any]:
    user = request.state.user
    return {
        "page": page,
        "title": title,
        "site": SITE_NAME,
        "user": UserRead.model_validate(user).model_dump(mode="json") if user else None,
        "csrfToken": request.state.csrf_token,
    }


@router.get("/")
def home(request: Request) -> Dict[str, Any]:
    return _page(request, "home", "ATCC - Association of Tamil Canadian Community")


@router.get("/about")
def about(request: Request) -> Dict[str, Any]:
    return _page(request, "about", "ATCC - About Us")


@router.get("/contact")
def contact(request: Request) -> Dict[str, Any]:
    return _page(request, "contact", "ATCC - Contact")
