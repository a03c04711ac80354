"""
validation.py — Untrusted input handling
========================================
Three layers, applied in this order to every request:

1. ``sanitize``          drops operator-style keys (``$where``, ``$gt`` ...) and
                         prototype-pollution names from any nested mapping.
2. ``sanitize_request``  app-level dependency: parses query string, route
                         params and JSON / form body, sanitizes them and
                         parks the results on ``request.state``.
3. ``validate_form``     handlers validate ``request.state.payload`` against a
                         pydantic schema; failures surface as field errors.

``create_safe_regex`` turns a free-text search term into a literal,
case-insensitive pattern for filtering.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from .errors import FormValidationError

log = logging.getLogger("community.validation")

SEARCH_TERM_MAX_LENGTH = 100

_POLLUTION_KEYS = frozenset({"__proto__", "constructor", "prototype"})

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Sanitizer
# ---------------------------------------------------------------------------

def _is_dangerous_key(key: Any) -> bool:
    return isinstance(key, str) and (key.startswith("$") or key in _POLLUTION_KEYS)


def sanitize(value: Any) -> Any:
    """Return *value* with dangerous keys removed at every nesting level.

    Mappings are rebuilt without the offending keys, lists keep their
    length with each element sanitized, scalars pass through untouched.
    """
    if isinstance(value, dict):
        return {k: sanitize(v) for k, v in value.items() if not _is_dangerous_key(k)}
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Safe regex
# ---------------------------------------------------------------------------

def escape_regex(term: str) -> str:
    """Backslash-escape every regex metacharacter in *term*."""
    return re.escape(term)


def create_safe_regex(term: Any) -> Optional[re.Pattern]:
    """Build a literal case-insensitive matcher, or None to reject the term."""
    if not isinstance(term, str) or not term or len(term) > SEARCH_TERM_MAX_LENGTH:
        return None
    term = term.strip()
    if not term:
        return None
    return re.compile(escape_regex(term), re.IGNORECASE)


def regex_clause(column, pattern: re.Pattern):
    """SQL filter matching *column* against a pattern from create_safe_regex.

    The case-insensitive flag is embedded inline since the sqlite REGEXP
    function ignores ``flags``.
    """
    return column.regexp_match("(?i)" + pattern.pattern)


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def _multi_to_dict(items) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in items:
        if key in out:
            current = out[key]
            out[key] = current + [value] if isinstance(current, list) else [current, value]
        else:
            out[key] = value
    return out


async def _read_body(request: Request) -> Dict[str, Any]:
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return {}
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        raw = await request.body()
        if not raw:
            return {}
        try:
            body = json.loads(raw)
        except ValueError:
            raise FormValidationError([{"field": "body", "msg": "Malformed JSON body"}])
        return body if isinstance(body, dict) else {}
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        return _multi_to_dict(
            (k, v) for k, v in form.multi_items() if isinstance(v, str)
        )
    return {}


async def sanitize_request(request: Request) -> None:
    """App-level dependency: expose sanitized input on ``request.state``."""
    body = await _read_body(request)
    payload = sanitize(body)
    if len(payload) != len(body):
        log.warning(
            "Dropped %d unsafe body key(s) from %s %s",
            len(body) - len(payload), request.method, request.url.path,
        )
    request.state.payload = payload
    request.state.query = sanitize(_multi_to_dict(request.query_params.multi_items()))
    request.state.params = sanitize(dict(request.path_params))


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------

def _field_errors(exc: ValidationError) -> List[Dict[str, str]]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "body"
        msg = err.get("msg", "Invalid value")
        ctx = err.get("ctx") or {}
        # Custom validators raise ValueError; pydantic prefixes its text
        if err.get("type") == "value_error" and "error" in ctx:
            msg = str(ctx["error"])
        errors.append({"field": field, "msg": msg})
    return errors


def validate_form(schema: Type[M], payload: Dict[str, Any]) -> M:
    """Validate *payload* against *schema*; raise FormValidationError on failure."""
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise FormValidationError(_field_errors(exc))
