from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .config import settings
from .csrf import csrf_protect
from .database import init_db
from .errors import CsrfError, FormValidationError, Forbidden, LoginRequired, RateLimitExceeded
from .mailer import Mailer
from .rate_limit import RateLimiter, RateLimitMiddleware, rate_limit_response
from .sessions import SessionMiddleware, SessionStore
from .validation import sanitize_request
from .api import (
    routes_admin,
    routes_blog,
    routes_contact,
    routes_directory,
    routes_events,
    routes_pages,
    routes_setup,
    routes_users,
)
from .auth.dependencies import identify_user, prefers_json
from .auth.routes_auth import router as auth_router

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    """Configure structured JSON logging when log_format=json (default)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        ))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)

_configure_logging()

log = logging.getLogger("community.app")

# Initialise database tables on startup
init_db()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates" / "pages"))

GENERIC_ERROR = "Something went wrong. Please try again later."


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.session_store.purge_expired()
    if app.state.mailer.configured:
        app.state.mailer.verify_connection()
    log.info("Community site started (environment=%s)", settings.environment)
    yield


app = FastAPI(
    title="ATCC Community Site",
    version="1.0.0",
    description=(
        "Community organisation website: public pages, blog, events, business "
        "directory and contact forms, plus an admin panel. Every request passes "
        "through sessions, rate limiting, input sanitisation, CSRF verification "
        "and role checks before reaching a handler."
    ),
    lifespan=lifespan,
    # Order matters: handlers and role gates rely on all three having run
    dependencies=[Depends(sanitize_request), Depends(csrf_protect), Depends(identify_user)],
)

# Pipeline components, constructed once
app.state.rate_limiter = RateLimiter(
    trust_proxy=settings.trust_proxy or settings.is_production,
    proxy_hops=settings.proxy_hops,
)
app.state.session_store = SessionStore(settings.session_max_age_seconds)
app.state.mailer = Mailer.from_settings(settings)


# ---------------------------------------------------------------------------
# Middleware (last added runs first)
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)
app.add_middleware(
    SessionMiddleware,
    secret=settings.session_secret,
    store=app.state.session_store,
    cookie_name=settings.session_cookie_name,
    secure=settings.is_production,
)
app.add_middleware(SecurityHeadersMiddleware)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

def _page(request: Request, template: str, status_code: int, **context):
    return templates.TemplateResponse(
        request, template, {"title": f"ATCC - {status_code}", **context}, status_code=status_code,
    )


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError):
    return JSONResponse(status_code=400, content={"error": exc.message, "errors": exc.errors})


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    if prefers_json(request):
        return JSONResponse(status_code=401, content={"error": exc.message})
    return RedirectResponse("/auth/login", status_code=303)


@app.exception_handler(Forbidden)
async def forbidden_handler(request: Request, exc: Forbidden):
    if prefers_json(request):
        return JSONResponse(status_code=403, content={"error": exc.message})
    return _page(request, "403.html", 403, message=exc.message)


@app.exception_handler(CsrfError)
async def csrf_handler(request: Request, exc: CsrfError):
    return JSONResponse(status_code=403, content={"error": exc.message, "reason": exc.reason})


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return rate_limit_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and not prefers_json(request):
        return _page(request, "404.html", 404)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    log.exception("Database error on %s %s", request.method, request.url.path)
    if prefers_json(request):
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})
    return _page(request, "500.html", 500)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth_router)
app.include_router(routes_admin.router)
app.include_router(routes_users.router)
app.include_router(routes_blog.router)
app.include_router(routes_events.router)
app.include_router(routes_directory.router)
app.include_router(routes_contact.router)
app.include_router(routes_setup.router)
app.include_router(routes_pages.router)


@app.get("/health", tags=["meta"])
def health() -> dict:
    return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
