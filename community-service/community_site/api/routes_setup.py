"""
routes_setup.py — First-deployment bootstrap
============================================
Available in development, or in production only with ENABLE_SETUP=true.
Anywhere else these paths behave exactly like unknown pages (404).
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from ..auth.seed import promote_to_admin, seed_admin, seed_businesses
from ..config import settings

router = APIRouter(prefix="/setup", tags=["setup"])

log = logging.getLogger("community.setup")


def setup_gate() -> None:
    if not settings.setup_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found.")


@router.get("", dependencies=[Depends(setup_gate)])
def run_setup() -> Dict[str, Any]:
    results = []
    for step in (seed_admin, seed_businesses):
        try:
            results.extend(step())
        except SQLAlchemyError:
            log.exception("Setup step %s failed", step.__name__)
            results.append(f"Error running {step.__name__}")
    return {"title": "ATCC Setup Complete", "results": results}


@router.get("/promote/{email}", dependencies=[Depends(setup_gate)])
def promote(email: str) -> Dict[str, Any]:
    if not promote_to_admin(email):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User not found: {email}")
    return {"message": f"{email} is now an admin"}
