"""
Tests for the pre-persist hooks: blog slugs (including the duplicate-key
retry), publish date and excerpt, event status and business normalisation.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from community_site import lifecycle
from community_site.database import db_session
from community_site.lifecycle import derive_event_status, make_excerpt, prepare_business, slugify
from community_site.models import Blog, Business, Event, utcnow
from community_site.repository import (
    create_blog,
    create_business,
    create_event,
    update_blog,
    update_event,
)


def _blog(title: str = "Community Picnic", **extra) -> dict:
    fields = {"title": title, "content": "Join us in the park for food and games.", "status": "draft"}
    fields.update(extra)
    return fields


def _event(start: datetime, end: datetime, **extra) -> dict:
    fields = {
        "title": "Pongal Festival",
        "description": "Harvest festival celebration",
        "start_date": start,
        "end_date": end,
        "address": "1 Main St",
        "city": "Toronto",
        "province": "Ontario",
    }
    fields.update(extra)
    return fields


@pytest.fixture
def author(make_user):
    return make_user(role="author")


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

class TestSlugify:
    @pytest.mark.parametrize("title,slug", [
        ("Community Picnic", "community-picnic"),
        ("  Hello,   World!  ", "hello-world"),
        ("Tamil New Year -- 2025", "tamil-new-year-2025"),
        ("- Edge Hyphens -", "edge-hyphens"),
        ("Café & Culture", "caf-culture"),
        ("!!!", ""),
    ])
    def test_slugify(self, title, slug):
        assert slugify(title) == slug


class TestBlogSlugs:
    def test_same_title_twice(self, author):
        first = create_blog(_blog(), author_id=author.id)
        second = create_blog(_blog(), author_id=author.id)
        assert first.slug == "community-picnic"
        assert second.slug == "community-picnic-1"

    def test_suffix_keeps_counting(self, author):
        slugs = [create_blog(_blog(), author_id=author.id).slug for _ in range(4)]
        assert slugs == ["community-picnic", "community-picnic-1", "community-picnic-2", "community-picnic-3"]

    def test_symbol_only_title_gets_fallback(self, author):
        assert create_blog(_blog(title="???"), author_id=author.id).slug == "post"

    def test_update_keeps_own_slug(self, author):
        blog = create_blog(_blog(), author_id=author.id)
        updated = update_blog(blog.id, {"title": "Community Picnic", "content": "Updated content here."})
        assert updated.slug == "community-picnic"

    def test_cleared_slug_rederived_excluding_self(self, author):
        blog = create_blog(_blog(), author_id=author.id)
        updated = update_blog(blog.id, {"slug": None})
        assert updated.slug == "community-picnic"

    def test_conflicting_insert_is_retried(self, author, monkeypatch):
        """A concurrent writer took the slug between our check and our insert."""
        create_blog(_blog(), author_id=author.id)

        real = lifecycle.slug_taken
        calls = {"n": 0}

        def stale_check(session, slug, exclude_id=None):
            calls["n"] += 1
            if calls["n"] == 1:
                return False  # check ran before the other insert committed
            return real(session, slug, exclude_id)

        monkeypatch.setattr(lifecycle, "slug_taken", stale_check)
        blog = create_blog(_blog(), author_id=author.id)
        assert blog.slug == "community-picnic-1"
        with db_session() as session:
            slugs = session.execute(select(Blog.slug).order_by(Blog.id)).scalars().all()
        assert slugs == ["community-picnic", "community-picnic-1"]

    def test_gives_up_after_retries(self, author, monkeypatch):
        create_blog(_blog(), author_id=author.id)
        monkeypatch.setattr(lifecycle, "slug_taken", lambda *a, **k: False)
        with pytest.raises(IntegrityError):
            create_blog(_blog(), author_id=author.id)
        with db_session() as session:
            assert len(session.execute(select(Blog)).scalars().all()) == 1


class TestBlogDerivedFields:
    def test_publish_date_stamped_once(self, author):
        blog = create_blog(_blog(status="published"), author_id=author.id)
        assert blog.published_at is not None
        stamped = blog.published_at
        again = update_blog(blog.id, {"content": "Edited after publishing."})
        assert again.published_at == stamped

    def test_draft_has_no_publish_date(self, author):
        assert create_blog(_blog(), author_id=author.id).published_at is None

    def test_publishing_later_stamps_date(self, author):
        blog = create_blog(_blog(), author_id=author.id)
        assert update_blog(blog.id, {"status": "published"}).published_at is not None

    def test_excerpt_from_long_content(self, author):
        content = "x" * 250
        blog = create_blog(_blog(content=content), author_id=author.id)
        assert blog.excerpt == "x" * 200 + "..."

    def test_short_content_excerpt_not_marked_truncated(self):
        assert make_excerpt("Short post body") == "Short post body"

    def test_explicit_excerpt_kept(self, author):
        blog = create_blog(_blog(excerpt="Hand written"), author_id=author.id)
        assert blog.excerpt == "Hand written"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEventStatus:
    def test_ongoing(self):
        now = utcnow()
        event = create_event(_event(now - timedelta(hours=2), now + timedelta(hours=2)), organizer_id=None)
        assert event.status == "ongoing"
        with db_session() as session:
            assert session.get(Event, event.id).status == "ongoing"

    def test_completed(self):
        now = utcnow()
        event = create_event(_event(now - timedelta(hours=5), now - timedelta(hours=1)), organizer_id=None)
        assert event.status == "completed"

    def test_upcoming(self):
        now = utcnow()
        event = create_event(_event(now + timedelta(days=1), now + timedelta(days=2)), organizer_id=None)
        assert event.status == "upcoming"

    def test_boundaries_count_as_ongoing(self):
        now = datetime(2030, 1, 1, 12, 0)
        assert derive_event_status(now, now + timedelta(hours=1), now) == "ongoing"
        assert derive_event_status(now - timedelta(hours=1), now, now) == "ongoing"

    def test_recomputed_on_save(self):
        now = utcnow()
        event = create_event(_event(now + timedelta(days=1), now + timedelta(days=2)), organizer_id=None)
        moved = update_event(event.id, {"start_date": now - timedelta(days=2), "end_date": now - timedelta(days=1)})
        assert moved.status == "completed"

    def test_cancelled_is_sticky(self):
        now = utcnow()
        event = create_event(
            _event(now - timedelta(hours=1), now + timedelta(hours=1), status="cancelled"), organizer_id=None,
        )
        assert event.status == "cancelled"
        assert update_event(event.id, {"title": "Postponed"}).status == "cancelled"

    def test_uncancel_recomputes(self):
        now = utcnow()
        event = create_event(
            _event(now - timedelta(hours=1), now + timedelta(hours=1), status="cancelled"), organizer_id=None,
        )
        assert update_event(event.id, {"status": "upcoming"}).status == "ongoing"


# ---------------------------------------------------------------------------
# Businesses
# ---------------------------------------------------------------------------

class TestBusinessHook:
    def test_normalises_email_and_services(self):
        business = Business(email="  Owner@Example.COM ", services=" Catering , ,Takeout ")
        prepare_business(business)
        assert business.email == "owner@example.com"
        assert business.services == "Catering,Takeout"

    def test_applied_on_create(self):
        business = create_business({
            "business_name": "Chennai Bakery",
            "owner_first_name": "Meena",
            "owner_last_name": "Raj",
            "phone": "4165550000",
            "email": "Hello@ChennaiBakery.CA",
            "address": "10 Queen St",
            "city": "Toronto",
            "province": "Ontario",
            "postal_code": "M5H 2N2",
            "category": "grocery",
            "services": "Cakes, Sweets",
        }, added_by_id=None)
        assert business.email == "hello@chennaibakery.ca"
        assert business.services == "Cakes,Sweets"
