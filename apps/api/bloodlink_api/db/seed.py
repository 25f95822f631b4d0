"""Seed data for development and testing."""

from sqlalchemy.orm import Session

from bloodlink_api.models import UserProfile
from bloodlink_api.models.profile import ROLE_DONOR, ROLE_HOSPITAL

DEMO_DONOR_ID = "00000000-0000-4000-8000-000000000001"
DEMO_HOSPITAL_ID = "00000000-0000-4000-8000-000000000002"


def seed_profiles(db: Session) -> list[UserProfile]:
    """Seed a demo donor and a demo hospital reviewer."""
    demo_profiles = [
        {
            "id": DEMO_DONOR_ID,
            "email": "donor@bloodlink.test",
            "full_name": "Demo Donor",
            "role": ROLE_DONOR,
            "blood_type": "O+",
            "phone": "+10000000001",
        },
        {
            "id": DEMO_HOSPITAL_ID,
            "email": "reviewer@bloodlink.test",
            "full_name": "Demo Hospital Reviewer",
            "role": ROLE_HOSPITAL,
        },
    ]

    profiles = []
    for data in demo_profiles:
        profile = db.query(UserProfile).filter(UserProfile.id == data["id"]).first()
        if not profile:
            profile = UserProfile(**data)
            db.add(profile)
        profiles.append(profile)
    db.flush()
    return profiles


def seed_all(db: Session):
    """Seed all initial data."""
    seed_profiles(db)
    db.commit()
