"""Local verification ledger engine.

Executes the DonorVerification contract semantics against the ledger
database: one current record per donor address, a single admin allowed to
write, and an append-only event log. Every state-changing call is one
transaction whose hash commits to the previous transaction (hash chaining),
so the event log is tamper-evident.

The engine only flushes; the caller owns commit/rollback so that state and
events land together or not at all.
"""

import hashlib
import json
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from bloodlink_api.errors import LedgerRejectedError
from bloodlink_api.hashing import ZERO_HASH, compare_hashes, normalize_hash
from bloodlink_api.ledger.addresses import ZERO_ADDRESS, addresses_equal, normalize_address
from bloodlink_api.ledger.types import (
    EVENT_ADMIN_TRANSFERRED,
    EVENT_CREATED,
    EVENT_UPDATED,
    WRITE_EVENTS,
    LedgerEventData,
    LedgerReceipt,
    RecordView,
    VerificationView,
)
from bloodlink_api.models import LedgerEvent, LedgerRecord, LedgerState

REVERT_NOT_ADMIN = "Only admin can perform this action"
REVERT_INVALID_HASH = "Invalid certificate hash"
REVERT_INVALID_ADMIN = "Invalid new admin address"
REVERT_NOT_DEPLOYED = "Ledger contract not deployed"


class VerificationLedger:
    """Donor verification contract executed on the local ledger database."""

    def __init__(self, db: Session, clock: Callable[[], float] = time.time):
        """Initialize ledger engine."""
        self.db = db
        self.clock = clock

    # -- deployment -----------------------------------------------------

    def deploy(self, contract_address: str, admin_address: str) -> LedgerState:
        """Create the contract state if it does not exist yet."""
        state = self._get_state()
        if state:
            return state
        state = LedgerState(
            id=1,
            contract_address=normalize_address(contract_address),
            admin_address=normalize_address(admin_address),
            block_number=0,
            block_timestamp=0,
        )
        self.db.add(state)
        self.db.flush()
        return state

    def _get_state(self, for_update: bool = False) -> Optional[LedgerState]:
        query = self.db.query(LedgerState).filter(LedgerState.id == 1)
        if for_update:
            # Writers must chain onto the committed head, never a cached one
            query = query.with_for_update().populate_existing()
        return query.first()

    def _require_state(self, for_update: bool = False) -> LedgerState:
        state = self._get_state(for_update=for_update)
        if not state:
            raise LedgerRejectedError(REVERT_NOT_DEPLOYED)
        return state

    # -- writes ---------------------------------------------------------

    def store_verification(
        self, caller: str, donor: str, cert_hash: str, eligible: bool
    ) -> LedgerReceipt:
        """Store or overwrite the verification record for a donor address."""
        state = self._require_state(for_update=True)
        donor = normalize_address(donor)
        cert_hash = normalize_hash(cert_hash)

        if not addresses_equal(caller, state.admin_address):
            raise LedgerRejectedError(REVERT_NOT_ADMIN)
        if cert_hash == ZERO_HASH:
            raise LedgerRejectedError(REVERT_INVALID_HASH)

        timestamp = self._next_block_time(state)
        record = self.db.query(LedgerRecord).filter(LedgerRecord.donor_address == donor).first()

        if record is None:
            event_type = EVENT_CREATED
            args = {
                "donor": donor,
                "certHash": cert_hash,
                "eligible": bool(eligible),
                "timestamp": timestamp,
                "writer": caller.lower(),
            }
            record = LedgerRecord(donor_address=donor)
            self.db.add(record)
        else:
            event_type = EVENT_UPDATED
            args = {
                "donor": donor,
                "oldHash": record.cert_hash,
                "newHash": cert_hash,
                "eligible": bool(eligible),
                "timestamp": timestamp,
            }

        record.cert_hash = cert_hash
        record.eligible = bool(eligible)
        record.timestamp = timestamp

        return self._commit_transaction(state, event_type, donor, args, timestamp)

    def transfer_admin(self, caller: str, new_admin: str) -> LedgerReceipt:
        """Hand the single write capability to another address."""
        state = self._require_state(for_update=True)
        if not addresses_equal(caller, state.admin_address):
            raise LedgerRejectedError(REVERT_NOT_ADMIN)
        new_admin = normalize_address(new_admin)
        if new_admin == ZERO_ADDRESS:
            raise LedgerRejectedError(REVERT_INVALID_ADMIN)

        timestamp = self._next_block_time(state)
        args = {"oldAdmin": state.admin_address, "newAdmin": new_admin}
        state.admin_address = new_admin
        return self._commit_transaction(state, EVENT_ADMIN_TRANSFERRED, None, args, timestamp)

    def _next_block_time(self, state: LedgerState) -> int:
        # Block time never goes backwards, even if the wall clock does.
        return max(int(self.clock()), state.block_timestamp or 0)

    def _hash_transaction(self, tx_data: dict) -> str:
        """Compute hash of transaction data."""
        tx_str = json.dumps(tx_data, sort_keys=True)
        return "0x" + hashlib.sha256(tx_str.encode()).hexdigest()

    def _commit_transaction(
        self,
        state: LedgerState,
        event_type: str,
        donor: Optional[str],
        args: dict,
        timestamp: int,
    ) -> LedgerReceipt:
        block_number = state.block_number + 1
        previous_hash = state.head_tx_hash
        tx_hash = self._hash_transaction(
            {
                "contract": state.contract_address,
                "block_number": block_number,
                "event_type": event_type,
                "args": args,
                "previous_hash": previous_hash,
                "timestamp": timestamp,
            }
        )

        self.db.add(
            LedgerEvent(
                tx_hash=tx_hash,
                previous_tx_hash=previous_hash,
                block_number=block_number,
                event_type=event_type,
                donor_address=donor,
                args_json=args,
                timestamp=timestamp,
            )
        )
        state.block_number = block_number
        state.block_timestamp = timestamp
        state.head_tx_hash = tx_hash
        self.db.flush()

        event = LedgerEventData(
            event_type=event_type,
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=timestamp,
            args=dict(args),
        )
        return LedgerReceipt(
            tx_hash=tx_hash,
            block_number=block_number,
            timestamp=timestamp,
            events=(event,),
        )

    # -- views ----------------------------------------------------------

    def verify(self, donor: str, cert_hash: str) -> VerificationView:
        """Check a hash against the stored record for a donor."""
        donor = normalize_address(donor)
        cert_hash = normalize_hash(cert_hash)
        record = self.db.query(LedgerRecord).filter(LedgerRecord.donor_address == donor).first()
        if record is None:
            return VerificationView(eligible=False, timestamp=0, matches=False)
        return VerificationView(
            eligible=record.eligible,
            timestamp=record.timestamp,
            matches=compare_hashes(record.cert_hash, cert_hash),
        )

    def get_record(self, donor: str) -> RecordView:
        donor = normalize_address(donor)
        record = self.db.query(LedgerRecord).filter(LedgerRecord.donor_address == donor).first()
        if record is None:
            return RecordView.absent()
        return RecordView(
            cert_hash=record.cert_hash,
            eligible=record.eligible,
            timestamp=record.timestamp,
            exists=True,
        )

    def has_record(self, donor: str) -> bool:
        return self.get_record(donor).exists

    def admin(self) -> str:
        return self._require_state().admin_address

    def contract_address(self) -> str:
        return self._require_state().contract_address

    def events(self, donor: Optional[str] = None) -> list[LedgerEventData]:
        """Return emitted events in chain order, optionally for one donor."""
        query = self.db.query(LedgerEvent)
        if donor is not None:
            query = query.filter(LedgerEvent.donor_address == normalize_address(donor))
        return [_to_event_data(row) for row in query.order_by(LedgerEvent.block_number.asc()).all()]

    def latest_write(self, donor: str) -> Optional[LedgerEventData]:
        """Latest create/update event for a donor address."""
        row = (
            self.db.query(LedgerEvent)
            .filter(
                LedgerEvent.donor_address == normalize_address(donor),
                LedgerEvent.event_type.in_(WRITE_EVENTS),
            )
            .order_by(LedgerEvent.block_number.desc())
            .first()
        )
        return _to_event_data(row) if row else None

    def find_write(self, tx_hash: str) -> Optional[LedgerEventData]:
        """Create/update event emitted by a transaction, or None."""
        row = (
            self.db.query(LedgerEvent)
            .filter(
                LedgerEvent.tx_hash == normalize_hash(tx_hash),
                LedgerEvent.event_type.in_(WRITE_EVENTS),
            )
            .first()
        )
        return _to_event_data(row) if row else None

    def verify_chain(self) -> tuple[bool, Optional[str]]:
        """Verify hash chain integrity of the event log."""
        state = self._get_state()
        events = self.db.query(LedgerEvent).order_by(LedgerEvent.block_number.asc()).all()
        if not events:
            return True, None

        previous_hash = None
        for event in events:
            if event.previous_tx_hash != previous_hash:
                return False, f"Broken link at block {event.block_number}"

            computed_hash = self._hash_transaction(
                {
                    "contract": state.contract_address if state else None,
                    "block_number": event.block_number,
                    "event_type": event.event_type,
                    "args": event.args_json,
                    "previous_hash": event.previous_tx_hash,
                    "timestamp": event.timestamp,
                }
            )
            if computed_hash != event.tx_hash:
                return False, f"Hash mismatch at block {event.block_number}"

            previous_hash = event.tx_hash

        if state and state.head_tx_hash != previous_hash:
            return False, "Chain head does not match the last event"
        return True, None


def _to_event_data(row: LedgerEvent) -> LedgerEventData:
    return LedgerEventData(
        event_type=row.event_type,
        tx_hash=row.tx_hash,
        block_number=row.block_number,
        timestamp=row.timestamp,
        args=dict(row.args_json or {}),
    )
