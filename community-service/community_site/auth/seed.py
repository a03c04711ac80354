from __future__ import annotations

import logging
import os
import sys
from typing import List

from sqlalchemy import select

from .core import hash_password
from ..database import db_session
from ..lifecycle import prepare_business
from ..models import Business, User

log = logging.getLogger("community.seed")

_DEFAULT_PASSWORD = "admin123"

SAMPLE_BUSINESSES = [
    {
        "business_name": "Tamil Spice Restaurant",
        "owner_first_name": "Raj",
        "owner_last_name": "Kumar",
        "phone": "(416) 555-0123",
        "email": "info@tamilspice.ca",
        "website": "https://tamilspice.ca",
        "address": "123 Main Street",
        "city": "Toronto",
        "province": "Ontario",
        "postal_code": "M5V 3A8",
        "category": "restaurant",
        "description": "Authentic Tamil cuisine serving traditional dishes from Tamil Nadu",
        "services": ["Dine-in", "Takeout", "Catering", "Special Events"],
    },
    {
        "business_name": "TechTamil Solutions",
        "owner_first_name": "Priya",
        "owner_last_name": "Sharma",
        "phone": "(604) 555-0456",
        "email": "contact@techtamil.ca",
        "website": "https://techtamil.ca",
        "address": "456 Technology Drive",
        "city": "Vancouver",
        "province": "British Columbia",
        "postal_code": "V6B 1A1",
        "category": "technology",
        "description": "IT consulting and software development services",
        "services": ["Web Development", "Mobile Apps", "IT Consulting", "Cloud Solutions"],
    },
    {
        "business_name": "Tamil Medical Clinic",
        "owner_first_name": "Dr. Arun",
        "owner_last_name": "Patel",
        "phone": "(403) 555-0789",
        "email": "clinic@tamilmedical.ca",
        "address": "789 Health Avenue",
        "city": "Calgary",
        "province": "Alberta",
        "postal_code": "T2P 1J9",
        "category": "healthcare",
        "description": "Comprehensive healthcare services with Tamil-speaking staff",
        "services": ["Family Medicine", "Pediatrics", "Preventive Care", "Health Screenings"],
    },
]


def seed_admin() -> List[str]:
    """
    Create the default admin account if no admin exists yet.

    Defaults (change the password right after first login):
      COMMUNITY_ADMIN_EMAIL    = admin@atcccanada.ca
      COMMUNITY_ADMIN_PASSWORD = admin123
    """
    email = os.getenv("COMMUNITY_ADMIN_EMAIL", "admin@atcccanada.ca")
    password = os.getenv("COMMUNITY_ADMIN_PASSWORD", _DEFAULT_PASSWORD)

    with db_session() as session:
        existing = session.execute(
            select(User).where(User.role == "admin").limit(1)
        ).scalar_one_or_none()
        if existing:
            return [f"Admin user already exists: {existing.email}"]

        if password == _DEFAULT_PASSWORD:
            print(
                "\n⚠️  WARNING: Seeding admin with DEFAULT password 'admin123'.\n"
                "   Change it after first login or set COMMUNITY_ADMIN_PASSWORD.\n",
                file=sys.stderr,
            )

        session.add(User(
            username="admin",
            email=email,
            first_name="Admin",
            last_name="User",
            password_hash=hash_password(password),
            role="admin",
            is_active=True,
        ))
    log.info("Default admin created: %s", email)
    return ["Admin user created successfully!", f"Email: {email}"]


def seed_businesses() -> List[str]:
    added = 0
    with db_session() as session:
        for data in SAMPLE_BUSINESSES:
            exists = session.execute(
                select(Business.id).where(Business.business_name == data["business_name"])
            ).first()
            if exists:
                continue
            fields = dict(data)
            services = fields.pop("services")
            business = Business(**fields, services=",".join(services))
            prepare_business(business)
            session.add(business)
            added += 1
    if added:
        log.info("Seeded %d sample businesses", added)
        return [f"Added {added} sample businesses"]
    return ["Sample businesses already exist"]


def promote_to_admin(email: str) -> bool:
    """Make the account with *email* an active admin. False if no such user."""
    with db_session() as session:
        user = session.execute(
            select(User).where(User.email == email.lower())
        ).scalar_one_or_none()
        if user is None:
            return False
        user.role = "admin"
        user.is_active = True
    log.info("Promoted %s to admin", email)
    return True
