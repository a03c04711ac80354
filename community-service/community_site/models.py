from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Integer, String, DateTime, Text, Boolean, Float
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


ROLES = ("admin", "editor", "author", "user")

BLOG_CATEGORIES = ("community", "events", "culture", "news", "announcements")
BLOG_STATUSES = ("draft", "published", "archived")

EVENT_CATEGORIES = ("cultural", "community", "fundraising", "educational", "networking", "entertainment")
EVENT_STATUSES = ("upcoming", "ongoing", "completed", "cancelled")

BUSINESS_CATEGORIES = (
    "restaurant",
    "retail",
    "professional_services",
    "healthcare",
    "beauty_wellness",
    "automotive",
    "real_estate",
    "education",
    "technology",
    "construction",
    "entertainment",
    "finance",
    "grocery",
    "other",
)


def split_csv(value: Optional[str]) -> List[str]:
    return [item for item in (value or "").split(",") if item]


class User(Base):
    """Site account. Role drives access to the admin panel."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(256), unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(64))
    last_name: Mapped[str] = mapped_column(String(64))
    password_hash: Mapped[str] = mapped_column(String(256))
    role: Mapped[str] = mapped_column(String(16), default="user", index=True)  # admin | editor | author | user
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class WebSession(Base):
    """Server-side session record. The cookie only carries the signed id."""

    __tablename__ = "web_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    csrf_secret: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)


class Blog(Base):
    __tablename__ = "blogs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200))
    slug: Mapped[Optional[str]] = mapped_column(String(256), unique=True, index=True, nullable=True)
    content: Mapped[str] = mapped_column(Text)
    excerpt: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    author_id: Mapped[int] = mapped_column(Integer, index=True)
    featured_image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    tags: Mapped[str] = mapped_column(Text, default="")  # comma-separated, lower-case
    category: Mapped[str] = mapped_column(String(32), default="community", index=True)
    status: Mapped[str] = mapped_column(String(16), default="draft", index=True)  # draft | published | archived
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    views: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    start_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, index=True)

    # Location
    address: Mapped[str] = mapped_column(String(256))
    city: Mapped[str] = mapped_column(String(128))
    province: Mapped[str] = mapped_column(String(128))
    postal_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    featured_image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    category: Mapped[str] = mapped_column(String(32), default="community", index=True)
    organizer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    ticket_price: Mapped[float] = mapped_column(Float, default=0.0)
    max_attendees: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    registration_required: Mapped[bool] = mapped_column(Boolean, default=False)
    registration_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="upcoming", index=True)  # upcoming | ongoing | completed | cancelled
    tags: Mapped[str] = mapped_column(Text, default="")
    external_link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Business(Base):
    """Business directory listing."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    business_name: Mapped[str] = mapped_column(String(200), index=True)
    owner_first_name: Mapped[str] = mapped_column(String(64))
    owner_last_name: Mapped[str] = mapped_column(String(64))

    # Contact
    phone: Mapped[str] = mapped_column(String(32))
    email: Mapped[str] = mapped_column(String(256))
    website: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Location
    address: Mapped[str] = mapped_column(String(256))
    city: Mapped[str] = mapped_column(String(128), index=True)
    province: Mapped[str] = mapped_column(String(128), index=True)
    postal_code: Mapped[str] = mapped_column(String(16))

    category: Mapped[str] = mapped_column(String(32), index=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    services: Mapped[str] = mapped_column(Text, default="")  # comma-separated
    logo: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    year_established: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Social
    facebook: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    instagram: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    twitter: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    linkedin: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    added_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def owner_name(self) -> str:
        return f"{self.owner_first_name} {self.owner_last_name}"

    @property
    def full_address(self) -> str:
        return f"{self.address}, {self.city}, {self.province} {self.postal_code}"
