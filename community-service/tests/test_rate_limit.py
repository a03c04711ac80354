"""
Tests for per-client rate limiting: counting, per-client isolation,
skip-successful policies and the 429 response shape.
"""
from __future__ import annotations

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from community_site.errors import RateLimitExceeded
from community_site.main import app
from community_site.rate_limit import DEFAULT_POLICIES, RateLimiter, RateLimitPolicy


client = TestClient(app)

TIGHT = RateLimitPolicy("tight", 15, 5, "Slow down.", "15 minutes")


def _bad_login(c: TestClient, token: str, ip: str | None = None):
    headers = {"X-CSRF-Token": token}
    if ip:
        headers["X-Forwarded-For"] = ip
    return c.post("/auth/login", json={"email": "nobody@example.com", "password": "wrong"}, headers=headers)


class TestRateLimiterUnit:
    @staticmethod
    def _request(forwarded: str | None = None, host: str = "192.0.2.1") -> Request:
        headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded is not None else []
        return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": (host, 50000)})

    def test_client_key_uses_nearest_forwarded_hop(self):
        limiter = RateLimiter([TIGHT], trust_proxy=True)
        assert limiter.client_key(self._request("1.1.1.1, 2.2.2.2, 203.0.113.5")) == "203.0.113.5"

    def test_client_key_counts_trusted_hops_from_right(self):
        limiter = RateLimiter([TIGHT], trust_proxy=True, proxy_hops=2)
        assert limiter.client_key(self._request("1.1.1.1, 198.51.100.7, 10.0.0.2")) == "198.51.100.7"

    def test_client_key_short_header_falls_back_to_peer(self):
        limiter = RateLimiter([TIGHT], trust_proxy=True, proxy_hops=2)
        assert limiter.client_key(self._request("198.51.100.7")) == "192.0.2.1"
        assert limiter.client_key(self._request()) == "192.0.2.1"

    def test_client_key_ignores_header_without_proxy_trust(self):
        limiter = RateLimiter([TIGHT])
        assert limiter.client_key(self._request("198.51.100.7")) == "192.0.2.1"

    def test_sixth_request_rejected(self):
        limiter = RateLimiter([TIGHT])
        for _ in range(5):
            limiter.check("tight", "10.0.0.1")
        with pytest.raises(RateLimitExceeded) as exc:
            limiter.check("tight", "10.0.0.1")
        assert exc.value.policy is TIGHT
        assert exc.value.remaining == 0

    def test_other_client_unaffected(self):
        limiter = RateLimiter([TIGHT])
        for _ in range(5):
            limiter.check("tight", "10.0.0.1")
        limiter.check("tight", "10.0.0.2")

    def test_policies_are_independent(self):
        other = RateLimitPolicy("other", 15, 5, "Slow down.", "15 minutes")
        limiter = RateLimiter([TIGHT, other])
        for _ in range(5):
            limiter.check("tight", "10.0.0.1")
        limiter.check("other", "10.0.0.1")

    def test_skip_successful_only_tests(self):
        lenient = RateLimitPolicy("lenient", 15, 2, "Slow down.", "15 minutes", skip_successful=True)
        limiter = RateLimiter([lenient])
        for _ in range(10):
            limiter.check("lenient", "10.0.0.1")
        limiter.charge("lenient", "10.0.0.1")
        limiter.charge("lenient", "10.0.0.1")
        with pytest.raises(RateLimitExceeded):
            limiter.check("lenient", "10.0.0.1")

    def test_unknown_policy(self):
        with pytest.raises(KeyError):
            RateLimiter([TIGHT]).check("missing", "10.0.0.1")

    def test_default_policy_table(self):
        table = {p.name: (p.window_minutes, p.max_requests, p.skip_successful) for p in DEFAULT_POLICIES}
        assert table == {
            "general": (15, 1000, False),
            "auth": (15, 5, True),
            "admin": (5, 100, False),
            "content-create": (60, 10, False),
            "contact": (60, 3, False),
            "password-reset": (60, 3, False),
        }

    def test_reset_clears_counters(self):
        limiter = RateLimiter([TIGHT])
        for _ in range(5):
            limiter.check("tight", "10.0.0.1")
        limiter.reset()
        limiter.check("tight", "10.0.0.1")


class TestAuthPolicy:
    def test_sixth_failed_login_gets_429(self, csrf):
        c = TestClient(app)
        token = csrf(c)
        for _ in range(5):
            assert _bad_login(c, token).status_code == 401
        resp = _bad_login(c, token)
        assert resp.status_code == 429
        assert resp.json() == {
            "error": "Too many login attempts, please try again later.",
            "retryAfter": "15 minutes",
        }
        assert resp.headers["RateLimit-Limit"] == "5"
        assert resp.headers["RateLimit-Remaining"] == "0"
        assert int(resp.headers["Retry-After"]) > 0

    def test_successful_logins_not_counted(self, make_user, login, csrf):
        user = make_user(role="author")
        c = TestClient(app)
        for _ in range(7):
            login(c, user.email)
        assert _bad_login(c, csrf(c)).status_code == 401

    def test_limit_is_per_client(self, csrf, monkeypatch):
        monkeypatch.setattr(app.state.rate_limiter, "trust_proxy", True)
        c = TestClient(app)
        token = csrf(c)
        for _ in range(5):
            _bad_login(c, token, ip="203.0.113.5")
        assert _bad_login(c, token, ip="203.0.113.5").status_code == 429
        assert _bad_login(c, token, ip="198.51.100.7").status_code == 401

    def test_spoofed_forwarded_entries_share_one_counter(self, csrf, monkeypatch):
        monkeypatch.setattr(app.state.rate_limiter, "trust_proxy", True)
        c = TestClient(app)
        token = csrf(c)
        codes = [
            _bad_login(c, token, ip=f"10.9.9.{i}, 203.0.113.5").status_code
            for i in range(6)
        ]
        assert codes == [401] * 5 + [429]

    def test_validation_failures_count(self, csrf):
        c = TestClient(app)
        token = csrf(c)
        for _ in range(5):
            resp = c.post("/auth/login", json={"email": "not-an-email"}, headers={"X-CSRF-Token": token})
            assert resp.status_code == 400
        assert _bad_login(c, token).status_code == 429


class TestGeneralPolicy:
    def test_headers_on_every_response(self):
        resp = client.get("/health")
        assert resp.headers["RateLimit-Limit"] == "1000"
        assert int(resp.headers["RateLimit-Remaining"]) < 1000

    def test_general_limit_rejects_before_handlers(self, monkeypatch):
        limiter = RateLimiter([RateLimitPolicy("general", 15, 2, "Too many requests, please try again later.", "15 minutes")])
        monkeypatch.setattr(app.state.rate_limiter, "policies", limiter.policies)
        c = TestClient(app)
        assert c.get("/health").status_code == 200
        assert c.get("/health").status_code == 200
        resp = c.get("/health")
        assert resp.status_code == 429
        assert resp.json()["retryAfter"] == "15 minutes"
