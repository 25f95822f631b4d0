"""Donor certificate model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from bloodlink_api.db.base import Base


class DonorCertificate(Base):
    """Uploaded health certificate and its ledger linkage.

    ``eligible`` is tri-state: NULL while pending review, True/False once a
    hospital reviewer has decided and the decision is on the ledger.
    """

    __tablename__ = "donor_certificates"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    donor_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    file_path = Column(Text, nullable=False)  # Storage locator, never mutated
    file_name = Column(String(255), nullable=True)
    content_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)
    donor_wallet_address = Column(String(42), nullable=False, index=True)
    cert_hash = Column(String(66), nullable=True, index=True)  # 0x + SHA-256 hex
    eligible = Column(Boolean, nullable=True, default=None, index=True)
    tx_hash = Column(String(66), nullable=True)  # Latest ledger transaction
    block_number = Column(Integer, nullable=True)
    chain_address = Column(String(42), nullable=True)  # Ledger contract address
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("user_profiles.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    verified_at = Column(DateTime, nullable=True, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    donor = relationship("UserProfile", back_populates="certificates", foreign_keys=[donor_id])
    reviewer = relationship("UserProfile", foreign_keys=[reviewed_by])

    @property
    def status(self) -> str:
        if self.eligible is None:
            return "pending"
        return "approved" if self.eligible else "rejected"
