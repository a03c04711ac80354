"""
rate_limit.py — Per-client request rate limiting
================================================
Named policies counted per (client address, policy) on a fixed window that
starts with the client's first request.  Built on ``limits`` (the engine
behind slowapi) with in-process memory storage; counts are lost on restart.

The ``general`` policy covers every request and is enforced by
``RateLimitMiddleware``.  Route policies are attached with the
``rate_limited(name)`` dependency.  Policies with ``skip_successful`` only
count requests that end with a 4xx/5xx status: they are tested before the
handler runs and charged by the middleware once the status is known.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from limits import RateLimitItem, RateLimitItemPerMinute
from limits.storage import MemoryStorage, Storage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from .errors import RateLimitExceeded

log = logging.getLogger("community.rate_limit")


@dataclass(frozen=True)
class RateLimitPolicy:
    name: str
    window_minutes: int
    max_requests: int
    message: str
    retry_after: str
    skip_successful: bool = False

    @property
    def item(self) -> RateLimitItem:
        return RateLimitItemPerMinute(self.max_requests, self.window_minutes, namespace=self.name)


DEFAULT_POLICIES = (
    RateLimitPolicy("general", 15, 1000,
                    "Too many requests, please try again later.", "15 minutes"),
    RateLimitPolicy("auth", 15, 5,
                    "Too many login attempts, please try again later.", "15 minutes",
                    skip_successful=True),
    RateLimitPolicy("admin", 5, 100,
                    "Too many admin operations, please slow down.", "5 minutes"),
    RateLimitPolicy("content-create", 60, 10,
                    "Too many content creation attempts, please try again later.", "1 hour"),
    RateLimitPolicy("contact", 60, 3,
                    "Too many form submissions, please try again later.", "1 hour"),
    RateLimitPolicy("password-reset", 60, 3,
                    "Too many password reset attempts, please try again later.", "1 hour"),
)


class RateLimiter:
    """Holds the policy table and counter storage for one application."""

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy] = DEFAULT_POLICIES,
        storage: Optional[Storage] = None,
        trust_proxy: bool = False,
        proxy_hops: int = 1,
    ) -> None:
        self.policies: Dict[str, RateLimitPolicy] = {p.name: p for p in policies}
        self.storage = storage or MemoryStorage()
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.trust_proxy = trust_proxy
        self.proxy_hops = max(proxy_hops, 1)

    def policy(self, name: str) -> RateLimitPolicy:
        try:
            return self.policies[name]
        except KeyError:
            raise KeyError(f"Unknown rate limit policy: {name}") from None

    def client_key(self, request: Request) -> str:
        """Client address, counted *proxy_hops* entries from the right of
        ``X-Forwarded-For`` when behind trusted proxies.

        Entries further left are supplied by the client and never used.
        """
        if self.trust_proxy:
            hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",")]
            hops = [h for h in hops if h]
            if len(hops) >= self.proxy_hops:
                return hops[-self.proxy_hops]
        return get_remote_address(request)

    def window(self, policy: RateLimitPolicy, key: str) -> tuple[int, int]:
        """(reset epoch seconds, remaining requests) for *key* under *policy*."""
        stats = self.strategy.get_window_stats(policy.item, key)
        reset_at = int(stats.reset_time) if stats.reset_time else int(time.time()) + policy.window_minutes * 60
        return reset_at, max(stats.remaining, 0)

    def check(self, name: str, key: str) -> RateLimitPolicy:
        """Count (or, for skip-successful policies, test) one request.

        Raises RateLimitExceeded when the client is over the limit.
        """
        policy = self.policy(name)
        if policy.skip_successful:
            allowed = self.strategy.test(policy.item, key)
        else:
            allowed = self.strategy.hit(policy.item, key)
        if not allowed:
            reset_at, remaining = self.window(policy, key)
            log.warning("Rate limit '%s' exceeded for %s", name, key)
            raise RateLimitExceeded(policy, reset_at, remaining)
        return policy

    def charge(self, name: str, key: str) -> None:
        self.strategy.hit(self.policy(name).item, key)

    def headers(self, policy: RateLimitPolicy, key: str) -> Dict[str, str]:
        reset_at, remaining = self.window(policy, key)
        return {
            "RateLimit-Limit": str(policy.max_requests),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(max(reset_at - int(time.time()), 0)),
        }

    def reset(self) -> None:
        self.storage.reset()


def rate_limit_response(exc: RateLimitExceeded) -> JSONResponse:
    retry_seconds = max(exc.reset_at - int(time.time()), 0)
    return JSONResponse(
        status_code=429,
        content={"error": exc.policy.message, "retryAfter": exc.policy.retry_after},
        headers={
            "Retry-After": str(retry_seconds),
            "RateLimit-Limit": str(exc.policy.max_requests),
            "RateLimit-Remaining": str(exc.remaining),
            "RateLimit-Reset": str(retry_seconds),
        },
    )


# ---------------------------------------------------------------------------
# Pipeline integration
# ---------------------------------------------------------------------------

class RateLimitMiddleware(BaseHTTPMiddleware):
    """Enforce the ``general`` policy and settle deferred charges."""

    def __init__(self, app, limiter: RateLimiter) -> None:
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        key = self.limiter.client_key(request)
        try:
            general = self.limiter.check("general", key)
        except RateLimitExceeded as exc:
            return rate_limit_response(exc)

        request.state.rate_limit_deferred = []
        request.state.rate_limit_policy = None
        response = await call_next(request)

        if response.status_code >= 400:
            for name in request.state.rate_limit_deferred:
                self.limiter.charge(name, key)

        shown = request.state.rate_limit_policy or general
        for header, value in self.limiter.headers(shown, key).items():
            response.headers.setdefault(header, value)
        return response


def rate_limited(name: str):
    """Route dependency applying the named policy."""

    def dependency(request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        key = limiter.client_key(request)
        policy = limiter.check(name, key)
        request.state.rate_limit_policy = policy
        if policy.skip_successful:
            request.state.rate_limit_deferred.append(name)

    dependency.__name__ = f"rate_limited_{name.replace('-', '_')}"
    return dependency
