"""
Contact and volunteer forms: validation, delivery through the mailer and the
per-client submission limit.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from community_site.main import app
from community_site.mailer import render_contact

CONTACT = {
    "name": "Meena Raj",
    "email": "meena@example.com",
    "phone": "+14165550123",
    "subject": "Volunteering",
    "message": "I would like to help at the next festival.",
}

VOLUNTEER = {
    "first_name": "Meena",
    "last_name": "Raj",
    "email": "meena@example.com",
    "skills": "Cooking, event setup",
}


class FakeMailer:
    configured = True

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, mail, to=None):
        self.sent.append(mail)
        return self.ok


@pytest.fixture
def mailer(monkeypatch):
    fake = FakeMailer()
    monkeypatch.setattr(app.state, "mailer", fake)
    return fake


@pytest.fixture
def client(csrf):
    client = TestClient(app)
    client.headers["X-CSRF-Token"] = csrf(client)
    return client


class TestContact:
    def test_submit(self, client, mailer):
        resp = client.post("/contact/submit", json=CONTACT)
        assert resp.status_code == 200, resp.text
        assert resp.json()["success"] is True
        (mail,) = mailer.sent
        assert mail.subject == "Contact Form Submission from Meena Raj"
        assert "I would like to help" in mail.text

    def test_form_encoded_submit(self, client, mailer):
        resp = client.post("/contact/submit", data=CONTACT)
        assert resp.status_code == 200, resp.text
        assert len(mailer.sent) == 1

    def test_invalid_fields(self, client, mailer):
        resp = client.post("/contact/submit", json={**CONTACT, "email": "not-an-email", "phone": "call me"})
        assert resp.status_code == 400
        errors = {e["field"]: e["msg"] for e in resp.json()["errors"]}
        assert "email" in errors
        assert errors["phone"] == "Please provide a valid phone number"
        assert mailer.sent == []

    def test_blank_optional_fields_accepted(self, client, mailer):
        resp = client.post("/contact/submit", json={**CONTACT, "phone": "  ", "subject": ""})
        assert resp.status_code == 200, resp.text

    def test_send_failure(self, client, monkeypatch):
        monkeypatch.setattr(app.state, "mailer", FakeMailer(ok=False))
        resp = client.post("/contact/submit", json=CONTACT)
        assert resp.status_code == 502
        assert resp.json() == {"error": "There was an error sending your message. Please try again later."}

    def test_missing_csrf_rejected(self, mailer):
        resp = TestClient(app).post("/contact/submit", json=CONTACT)
        assert resp.status_code == 403
        assert mailer.sent == []

    def test_fourth_submission_in_an_hour_limited(self, client, mailer):
        for _ in range(3):
            assert client.post("/contact/submit", json=CONTACT).status_code == 200
        resp = client.post("/contact/submit", json=CONTACT)
        assert resp.status_code == 429
        assert resp.json() == {
            "error": "Too many form submissions, please try again later.",
            "retryAfter": "1 hour",
        }
        assert len(mailer.sent) == 3

    def test_limit_shared_with_volunteer_form(self, client, mailer):
        for _ in range(3):
            client.post("/contact/submit", json=CONTACT)
        assert client.post("/contact/volunteer", json=VOLUNTEER).status_code == 429


class TestVolunteer:
    def test_submit(self, client, mailer):
        resp = client.post("/contact/volunteer", json=VOLUNTEER)
        assert resp.status_code == 200, resp.text
        (mail,) = mailer.sent
        assert mail.subject == "Volunteer Registration from Meena Raj"
        assert "Cooking, event setup" in mail.text

    def test_short_name_rejected(self, client, mailer):
        resp = client.post("/contact/volunteer", json={**VOLUNTEER, "first_name": "M"})
        assert resp.status_code == 400


class TestRendering:
    def test_html_body_is_escaped(self):
        mail = render_contact({**CONTACT, "message": "<script>alert(1)</script>\nsecond line"})
        assert "<script>" not in mail.html
        assert "&lt;script&gt;" in mail.html
        assert "<br>" in mail.html
        assert "<script>" in mail.text
