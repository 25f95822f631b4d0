"""Local ledger engine models.

Current state per donor address plus an append-only, hash-chained event log.
These tables belong to the ledger database, not the record store.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String

from bloodlink_api.db.base import LedgerBase


class LedgerState(LedgerBase):
    """Singleton row holding the admin and the chain head."""

    __tablename__ = "ledger_state"

    id = Column(Integer, primary_key=True)
    contract_address = Column(String(42), nullable=False)
    admin_address = Column(String(42), nullable=False)
    block_number = Column(Integer, default=0, nullable=False)
    block_timestamp = Column(Integer, default=0, nullable=False)
    head_tx_hash = Column(String(66), nullable=True)  # NULL before the first transaction
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LedgerRecord(LedgerBase):
    """Current verification record for one donor address (overwritten in place)."""

    __tablename__ = "ledger_records"

    donor_address = Column(String(42), primary_key=True)
    cert_hash = Column(String(66), nullable=False)
    eligible = Column(Boolean, nullable=False)
    timestamp = Column(Integer, nullable=False)  # Block time of the latest write
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class LedgerEvent(LedgerBase):
    """Append-only audit event with hash chaining."""

    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, index=True)
    tx_hash = Column(String(66), nullable=False, unique=True, index=True)
    previous_tx_hash = Column(String(66), nullable=True, index=True)  # NULL for first event
    block_number = Column(Integer, nullable=False, unique=True, index=True)
    event_type = Column(String(50), nullable=False, index=True)  # VerificationCreated, VerificationUpdated, AdminTransferred
    donor_address = Column(String(42), nullable=True, index=True)
    args_json = Column(JSON, nullable=False)
    timestamp = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
