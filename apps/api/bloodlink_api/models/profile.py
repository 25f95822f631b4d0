"""User profile model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from bloodlink_api.db.base import Base

ROLE_DONOR = "donor"
ROLE_HOSPITAL = "hospital"


class UserProfile(Base):
    """Profile of an authenticated user; the role gates certificate review."""

    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=True, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), default=ROLE_DONOR, nullable=False, index=True)  # donor, hospital
    blood_type = Column(String(10), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    certificates = relationship(
        "DonorCertificate",
        back_populates="donor",
        foreign_keys="DonorCertificate.donor_id",
    )
