from __future__ import annotations

import math
from typing import Any, Dict, List, Tuple

from fastapi import Request
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def page_number(request: Request) -> int:
    """1-based ``?page=`` from the sanitized query; bad values fall back to 1."""
    raw = request.state.query.get("page")
    try:
        page = int(raw) if isinstance(raw, str) else 1
    except ValueError:
        page = 1
    return max(page, 1)


def query_str(request: Request, name: str) -> str:
    """Single string query value; lists and other shapes read as empty."""
    value = request.state.query.get(name)
    return value.strip() if isinstance(value, str) else ""


def paginate(session: Session, stmt: Select, page: int, per_page: int) -> Tuple[List[Any], Dict[str, int]]:
    total = session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = session.execute(
        stmt.offset((page - 1) * per_page).limit(per_page)
    ).scalars().all()
    return list(items), {
        "currentPage": page,
        "totalPages": math.ceil(total / per_page),
        "total": total,
    }
