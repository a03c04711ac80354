"""
Tests for untrusted-input handling: key sanitisation, literal search
patterns and form validation.

Run with: pytest community-service/tests/test_validation.py -v
"""
from __future__ import annotations

import pytest

from community_site.errors import FormValidationError
from community_site.schemas import ContactForm, EventForm
from community_site.validation import create_safe_regex, escape_regex, sanitize, validate_form


def _keys(value):
    """Every mapping key at any depth."""
    if isinstance(value, dict):
        for k, v in value.items():
            yield k
            yield from _keys(v)
    elif isinstance(value, list):
        for item in value:
            yield from _keys(item)


class TestSanitize:
    def test_drops_operator_keys_at_every_depth(self):
        dirty = {
            "email": "a@b.c",
            "$where": "sleep(1000)",
            "password": {"$ne": None},
            "profile": {"name": "x", "nested": {"$gt": "", "ok": 1}},
            "items": [{"$set": {"role": "admin"}, "title": "t"}, "plain", 3],
        }
        clean = sanitize(dirty)
        assert not [k for k in _keys(clean) if k.startswith("$")]
        assert clean["email"] == "a@b.c"
        assert clean["password"] == {}
        assert clean["profile"] == {"name": "x", "nested": {"ok": 1}}
        assert clean["items"] == [{"title": "t"}, "plain", 3]

    def test_drops_prototype_pollution_names(self):
        clean = sanitize({"__proto__": {"admin": True}, "constructor": {}, "prototype": 1, "a": 1})
        assert clean == {"a": 1}

    @pytest.mark.parametrize("value", [None, 42, "text", 1.5, True, ["a", 1]])
    def test_scalars_and_plain_lists_pass_through(self, value):
        assert sanitize(value) == value

    def test_dollar_inside_values_is_kept(self):
        assert sanitize({"price": "$20"}) == {"price": "$20"}

    def test_does_not_mutate_input(self):
        dirty = {"$x": 1, "y": {"$z": 2}}
        sanitize(dirty)
        assert dirty == {"$x": 1, "y": {"$z": 2}}


class TestSafeRegex:
    def test_metacharacters_match_literally(self):
        pattern = create_safe_regex("a.*b")
        assert pattern.search("xx a.*b yy")
        assert not pattern.search("a-anything-b")
        assert not pattern.search("ab")

    def test_case_insensitive(self):
        assert create_safe_regex("Toronto").search("north toronto")

    def test_every_special_is_escaped(self):
        term = r".*+?^${}()|[]\ "
        pattern = create_safe_regex(term.strip())
        assert pattern.search("prefix " + term.strip() + " suffix")

    def test_escape_leaves_plain_text(self):
        assert escape_regex("picnic2025") == "picnic2025"
        assert escape_regex("(a)") == r"\(a\)"
        assert create_safe_regex("hello world").search("say Hello World")

    @pytest.mark.parametrize("term", [None, 12, ["a"], {"$regex": ".*"}, "", "   ", "x" * 101])
    def test_rejections(self, term):
        assert create_safe_regex(term) is None

    def test_length_limit_is_inclusive(self):
        assert create_safe_regex("x" * 100) is not None

    def test_surrounding_whitespace_is_trimmed(self):
        assert create_safe_regex("  picnic ").pattern == "picnic"

    def test_catastrophic_pattern_is_harmless(self):
        pattern = create_safe_regex("(a+)+$")
        assert pattern.search("aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa!") is None
        assert pattern.search("see (a+)+$ here")


class TestValidateForm:
    def test_valid_payload(self):
        form = validate_form(ContactForm, {
            "name": "  Priya  ", "email": "priya@example.com", "message": "Hello there, friends!",
        })
        assert form.name == "Priya"
        assert form.phone is None

    def test_field_level_errors(self):
        with pytest.raises(FormValidationError) as exc:
            validate_form(ContactForm, {"name": "P", "email": "nope", "phone": "0123", "message": "short"})
        fields = {e["field"] for e in exc.value.errors}
        assert {"name", "email", "phone", "message"} <= fields
        phone = next(e for e in exc.value.errors if e["field"] == "phone")
        assert phone["msg"] == "Please provide a valid phone number"

    def test_blank_optional_fields_are_absent(self):
        form = validate_form(ContactForm, {
            "name": "Priya", "email": "priya@example.com", "phone": "", "subject": "",
            "message": "Hello there, friends!",
        })
        assert form.phone is None and form.subject is None

    def test_event_end_before_start_rejected(self):
        with pytest.raises(FormValidationError):
            validate_form(EventForm, {
                "title": "Gala", "description": "An evening together",
                "start_date": "2030-05-02T18:00:00", "end_date": "2030-05-01T18:00:00",
                "address": "1 Main St", "city": "Toronto", "province": "Ontario",
            })

    def test_event_timezone_normalised_to_utc(self):
        form = validate_form(EventForm, {
            "title": "Gala", "description": "An evening together",
            "start_date": "2030-05-01T18:00:00-04:00", "end_date": "2030-05-01T22:00:00-04:00",
            "address": "1 Main St", "city": "Toronto", "province": "Ontario",
        })
        assert form.start_date.tzinfo is None
        assert form.start_date.hour == 22
