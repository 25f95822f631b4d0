"""Value types shared by the ledger engine and ledger clients."""

from dataclasses import dataclass, field
from typing import Optional

from bloodlink_api.hashing import ZERO_HASH

EVENT_CREATED = "VerificationCreated"
EVENT_UPDATED = "VerificationUpdated"
EVENT_ADMIN_TRANSFERRED = "AdminTransferred"

WRITE_EVENTS = (EVENT_CREATED, EVENT_UPDATED)


@dataclass(frozen=True)
class LedgerEventData:
    """An emitted audit event."""

    event_type: str
    tx_hash: str
    block_number: int
    timestamp: int
    args: dict = field(default_factory=dict)

    @property
    def cert_hash(self) -> Optional[str]:
        if self.event_type == EVENT_CREATED:
            return self.args.get("certHash")
        if self.event_type == EVENT_UPDATED:
            return self.args.get("newHash")
        return None


@dataclass(frozen=True)
class LedgerReceipt:
    """Confirmed ledger transaction."""

    tx_hash: str
    block_number: int
    timestamp: int
    events: tuple = ()


@dataclass(frozen=True)
class VerificationView:
    """Result of ``verify(donor, hash)``."""

    eligible: bool
    timestamp: int
    matches: bool


@dataclass(frozen=True)
class RecordView:
    """Result of ``getRecord(donor)``."""

    cert_hash: str
    eligible: bool
    timestamp: int
    exists: bool

    @classmethod
    def absent(cls) -> "RecordView":
        return cls(cert_hash=ZERO_HASH, eligible=False, timestamp=0, exists=False)
