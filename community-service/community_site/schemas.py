from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .models import (
    BLOG_CATEGORIES,
    BLOG_STATUSES,
    BUSINESS_CATEGORIES,
    EVENT_CATEGORIES,
    ROLES,
    split_csv,
)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")


def _csv(value: Optional[str], lower: bool = False) -> str:
    """Normalise a comma-separated form value for storage."""
    items = [item.strip() for item in (value or "").split(",")]
    items = [item.lower() if lower else item for item in items if item]
    return ",".join(items)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class FormModel(BaseModel):
    """Base for submitted forms: trims strings, treats blank fields as absent."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str) and not v.strip():
            field = cls.model_fields.get(info.field_name)
            if field is not None and not field.is_required():
                return field.get_default(call_default_factory=True)
            return None
        return v


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class LoginForm(FormModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterForm(FormModel):
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)


class PasswordChangeForm(FormModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=72)


class RoleUpdateForm(FormModel):
    role: str

    @field_validator("role")
    @classmethod
    def known_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError("Invalid role")
        return v


# ---------------------------------------------------------------------------
# Blog
# ---------------------------------------------------------------------------

class BlogForm(FormModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=10, max_length=50000)
    excerpt: Optional[str] = Field(default=None, max_length=500)
    category: str = "community"
    status: str = "draft"
    tags: Optional[str] = None
    featured_image: Optional[str] = Field(default=None, max_length=512)

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in BLOG_CATEGORIES:
            raise ValueError("Invalid category")
        return v

    @field_validator("status")
    @classmethod
    def known_status(cls, v: str) -> str:
        if v not in BLOG_STATUSES:
            raise ValueError("Invalid status")
        return v

    def to_fields(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["tags"] = _csv(self.tags, lower=True)
        return data


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class EventForm(FormModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    start_date: datetime
    end_date: datetime
    address: str = Field(..., max_length=256)
    city: str = Field(..., max_length=128)
    province: str = Field(..., max_length=128)
    postal_code: Optional[str] = Field(default=None, max_length=16)
    category: str = "community"
    ticket_price: float = Field(default=0.0, ge=0)
    max_attendees: Optional[int] = Field(default=None, ge=1, le=10000)
    registration_required: bool = False
    registration_deadline: Optional[datetime] = None
    cancelled: bool = False
    tags: Optional[str] = None
    external_link: Optional[str] = Field(default=None, max_length=512)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(default=None, max_length=32)
    featured_image: Optional[str] = Field(default=None, max_length=512)

    @field_validator("start_date", "end_date", "registration_deadline")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in EVENT_CATEGORIES:
            raise ValueError("Invalid category")
        return v

    @model_validator(mode="after")
    def end_after_start(self) -> "EventForm":
        if self.end_date < self.start_date:
            raise ValueError("End date must be after the start date")
        return self

    def to_fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"cancelled"})
        data["tags"] = _csv(self.tags, lower=True)
        # "upcoming" is a placeholder; the save hook derives the real status
        data["status"] = "cancelled" if self.cancelled else "upcoming"
        return data


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

class BusinessForm(FormModel):
    business_name: str = Field(..., min_length=1, max_length=200)
    owner_first_name: str = Field(..., min_length=1, max_length=64)
    owner_last_name: str = Field(..., min_length=1, max_length=64)
    phone: str = Field(..., max_length=32)
    email: EmailStr
    website: Optional[str] = Field(default=None, max_length=512)
    address: str = Field(..., max_length=256)
    city: str = Field(..., max_length=128)
    province: str = Field(..., max_length=128)
    postal_code: str = Field(..., max_length=16)
    category: str
    description: Optional[str] = Field(default=None, max_length=500)
    services: Optional[str] = None
    logo: Optional[str] = Field(default=None, max_length=512)
    year_established: Optional[int] = Field(default=None, ge=1800, le=2100)
    facebook: Optional[str] = Field(default=None, max_length=512)
    instagram: Optional[str] = Field(default=None, max_length=512)
    twitter: Optional[str] = Field(default=None, max_length=512)
    linkedin: Optional[str] = Field(default=None, max_length=512)
    is_featured: bool = False

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in BUSINESS_CATEGORIES:
            raise ValueError("Invalid category")
        return v

    def to_fields(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["email"] = str(self.email)
        data["services"] = _csv(self.services)
        return data


# ---------------------------------------------------------------------------
# Contact
# ---------------------------------------------------------------------------

def _check_phone(v: Optional[str]) -> Optional[str]:
    if v is not None and not PHONE_PATTERN.match(v):
        raise ValueError("Please provide a valid phone number")
    return v


PhoneNumber = Annotated[Optional[str], AfterValidator(_check_phone)]


class ContactForm(FormModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    phone: PhoneNumber = None
    subject: Optional[str] = Field(default=None, max_length=200)
    message: str = Field(..., min_length=10, max_length=2000)


class VolunteerForm(FormModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    phone: PhoneNumber = None
    skills: Optional[str] = Field(default=None, max_length=500)
    availability: Optional[str] = Field(default=None, max_length=300)
    experience: Optional[str] = Field(default=None, max_length=1000)
    additional_info: Optional[str] = Field(default=None, max_length=1000)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None


class BlogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: Optional[str]
    content: str
    excerpt: Optional[str]
    author_id: int
    featured_image: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    category: str
    status: str
    published_at: Optional[datetime] = None
    views: int
    created_at: datetime
    updated_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        return split_csv(v) if isinstance(v, str) or v is None else v


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    address: str
    city: str
    province: str
    postal_code: Optional[str] = None
    featured_image: Optional[str] = None
    category: str
    organizer_id: Optional[int] = None
    ticket_price: float
    max_attendees: Optional[int] = None
    registration_required: bool
    registration_deadline: Optional[datetime] = None
    status: str
    tags: List[str] = Field(default_factory=list)
    external_link: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        return split_csv(v) if isinstance(v, str) or v is None else v


class BusinessRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    business_name: str
    owner_name: str
    phone: str
    email: str
    website: Optional[str] = None
    address: str
    city: str
    province: str
    postal_code: str
    full_address: str
    category: str
    description: Optional[str] = None
    services: List[str] = Field(default_factory=list)
    logo: Optional[str] = None
    year_established: Optional[int] = None
    facebook: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    linkedin: Optional[str] = None
    is_active: bool
    is_featured: bool

    @field_validator("services", mode="before")
    @classmethod
    def split_services(cls, v: Any) -> Any:
        return split_csv(v) if isinstance(v, str) or v is None else v
