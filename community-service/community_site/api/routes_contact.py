from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..mailer import Mailer, render_contact, render_volunteer
from ..rate_limit import rate_limited
from ..schemas import ContactForm, VolunteerForm
from ..validation import validate_form

router = APIRouter(prefix="/contact", tags=["contact"])

SEND_FAILED = "There was an error sending your message. Please try again later."


def _deliver(request: Request, mail) -> None:
    mailer: Mailer = request.app.state.mailer
    if not mailer.send(mail):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=SEND_FAILED)


@router.post("/submit", dependencies=[Depends(rate_limited("contact"))])
def submit_contact(request: Request) -> Dict[str, Any]:
    form = validate_form(ContactForm, request.state.payload)
    _deliver(request, render_contact(form.model_dump(mode="json")))
    return {
        "success": True,
        "message": "Thank you for your message! We will get back to you soon.",
    }


@router.post("/volunteer", dependencies=[Depends(rate_limited("contact"))])
def submit_volunteer(request: Request) -> Dict[str, Any]:
    form = validate_form(VolunteerForm, request.state.payload)
    _deliver(request, render_volunteer(form.model_dump(mode="json")))
    return {
        "success": True,
        "message": "Thank you for your interest in volunteering! We will contact you soon.",
    }
