"""
errors.py — Request-pipeline failures
=====================================
Every security control in the request pipeline raises one of these and the
handlers registered in main.py turn them into responses.  Handlers never see
a request that failed an earlier stage.

  FormValidationError  → 400 with field-level messages
  LoginRequired        → 303 to /auth/login (pages) or 401 (API clients)
  Forbidden            → 403 rendered page (or JSON for API clients)
  CsrfTokenMissing     → 403  reason=csrf_missing
  CsrfTokenInvalid     → 403  reason=csrf_invalid
  RateLimitExceeded    → 429 with retryAfter and RateLimit-* headers
"""
from __future__ import annotations

from typing import Dict, List, Optional


class PipelineError(Exception):
    status_code: int = 400
    message: str = "Bad request"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class FormValidationError(PipelineError):
    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: List[Dict[str, str]]) -> None:
        super().__init__()
        self.errors = errors


class LoginRequired(PipelineError):
    status_code = 401
    message = "Authentication required"


class Forbidden(PipelineError):
    status_code = 403
    message = "Access denied. Insufficient permissions."


class CsrfError(PipelineError):
    status_code = 403
    reason: str = "csrf"


class CsrfTokenMissing(CsrfError):
    message = "CSRF token missing"
    reason = "csrf_missing"


class CsrfTokenInvalid(CsrfError):
    message = "Invalid CSRF token"
    reason = "csrf_invalid"


class RateLimitExceeded(PipelineError):
    status_code = 429

    def __init__(self, policy, reset_at: int, remaining: int = 0) -> None:
        super().__init__(policy.message)
        self.policy = policy
        self.reset_at = reset_at
        self.remaining = remaining
