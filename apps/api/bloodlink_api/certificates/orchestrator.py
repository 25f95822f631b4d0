"""Approval workflow: reviewer decision → ledger write → record store.

The ledger and the record store fail independently and there is no
distributed transaction between them. The ordering rule is strict: the
ledger write is confirmed (or has definitively failed) before the record
store is touched. A record store failure after a confirmed ledger write is
reported as ``InconsistencyError`` and repaired with ``reconcile``, which
re-reads the ledger by donor address (or by the transaction hash a
timed-out write reported). Ledger writes are never retried here.

Concurrent decisions on the same certificate are not guarded; the review UI
prevents resubmission while a decision is in flight.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bloodlink_api.auth.identity import Identity, ensure_role
from bloodlink_api.certificates.repository import CertificateRepository
from bloodlink_api.errors import (
    CertificateNotFoundError,
    InconsistencyError,
    UpstreamUnavailableError,
    ValidationError,
)
from bloodlink_api.hashing import compare_hashes, compute_certificate_hash, normalize_hash
from bloodlink_api.ledger.addresses import addresses_equal, normalize_address
from bloodlink_api.ledger.client import LedgerClient
from bloodlink_api.models import DonorCertificate
from bloodlink_api.models.profile import ROLE_HOSPITAL
from bloodlink_api.storage.service import FileStore
from bloodlink_api.utils.metrics import certificate_decisions, ledger_db_inconsistencies

logger = logging.getLogger(__name__)

RECONCILE_SYNCED = "synced"
RECONCILE_IN_SYNC = "in_sync"
RECONCILE_NOT_ON_LEDGER = "not_on_ledger"
RECONCILE_HASH_MISMATCH = "hash_mismatch"
RECONCILE_TX_UNKNOWN = "tx_unknown"


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of a recorded reviewer decision."""

    certificate_id: str
    cert_hash: str
    tx_hash: str
    block_number: int
    contract_address: str
    eligible: bool
    verified_at: datetime


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of re-reading the ledger for one certificate."""

    certificate_id: str
    status: str
    cert_hash: str
    ledger_hash: Optional[str] = None
    eligible: Optional[bool] = None
    tx_hash: Optional[str] = None
    ledger_timestamp: Optional[int] = None


def _utc_from_timestamp(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class ApprovalOrchestrator:
    """Turn a reviewer decision into a ledger write plus a record update."""

    def __init__(
        self,
        db: Session,
        ledger: LedgerClient,
        file_store: FileStore,
    ):
        """Initialize orchestrator."""
        self.db = db
        self.ledger = ledger
        self.file_store = file_store
        self.repository = CertificateRepository(db)

    def _recompute_hash(self, certificate: DonorCertificate) -> str:
        """Hash the stored file; the stored/client hash is never trusted."""
        try:
            data = self.file_store.download(certificate.file_path)
        except FileNotFoundError as e:
            raise CertificateNotFoundError(
                f"File for certificate {certificate.id} not found"
            ) from e
        cert_hash = compute_certificate_hash(data)
        if certificate.cert_hash and not compare_hashes(certificate.cert_hash, cert_hash):
            logger.warning(
                "Stored certificate hash differs from recomputed hash",
                extra={
                    "certificate_id": certificate.id,
                    "stored_hash": certificate.cert_hash,
                    "cert_hash": cert_hash,
                },
            )
        return cert_hash

    def decide(
        self,
        identity: Identity,
        certificate_id: str,
        claimed_address: Optional[str],
        eligible: bool,
        notes: Optional[str] = None,
    ) -> DecisionResult:
        """Record an approval or rejection on the ledger, then in the record store."""
        ensure_role(identity, ROLE_HOSPITAL)
        if not isinstance(eligible, bool):
            raise ValidationError("eligible must be true or false")

        certificate = self.repository.get_or_raise(certificate_id)
        if claimed_address is None:
            claimed_address = certificate.donor_wallet_address
        donor_address = normalize_address(claimed_address)
        if not addresses_equal(donor_address, certificate.donor_wallet_address):
            raise ValidationError(
                "Wallet address does not match the address claimed at upload"
            )

        cert_hash = self._recompute_hash(certificate)

        logger.info(
            "Storing verification on ledger",
            extra={
                "certificate_id": certificate_id,
                "donor_address": donor_address,
                "cert_hash": cert_hash,
                "eligible": eligible,
            },
        )
        # Ledger failures propagate unchanged; the record is not touched.
        receipt = self.ledger.write(donor_address, cert_hash, eligible)
        logger.info(
            "Ledger write confirmed",
            extra={
                "certificate_id": certificate_id,
                "tx_hash": receipt.tx_hash,
                "block_number": receipt.block_number,
            },
        )

        # Both decide and reconcile stamp the ledger block time
        verified_at = _utc_from_timestamp(receipt.timestamp)
        try:
            self.repository.update(
                certificate_id,
                cert_hash=cert_hash,
                eligible=eligible,
                tx_hash=receipt.tx_hash,
                block_number=receipt.block_number,
                chain_address=self.ledger.contract_address,
                verified_at=verified_at,
                reviewed_by=identity.user_id,
                admin_notes=notes or None,
            )
            self.db.commit()
        except (SQLAlchemyError, UpstreamUnavailableError, CertificateNotFoundError) as e:
            self.db.rollback()
            ledger_db_inconsistencies.inc()
            logger.critical(
                "Ledger write succeeded but record store update failed",
                extra={
                    "certificate_id": certificate_id,
                    "donor_address": donor_address,
                    "cert_hash": cert_hash,
                    "tx_hash": receipt.tx_hash,
                    "error": str(e),
                },
            )
            raise InconsistencyError(
                certificate_id, donor_address, cert_hash, receipt.tx_hash, cause=e
            ) from e

        certificate_decisions.labels(eligible=str(eligible).lower()).inc()
        return DecisionResult(
            certificate_id=certificate_id,
            cert_hash=cert_hash,
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            contract_address=self.ledger.contract_address,
            eligible=eligible,
            verified_at=verified_at,
        )

    def reconcile(
        self, identity: Identity, certificate_id: str, tx_hash: Optional[str] = None
    ) -> ReconcileResult:
        """Bring a certificate record in line with what the ledger holds.

        The transaction reference is taken from ``tx_hash`` when given (the
        hash a timed-out write reported), otherwise from the latest write
        event for the donor. A record is only marked decided when such a
        reference is found; otherwise the outcome is ``tx_unknown`` and the
        row is left untouched.
        """
        ensure_role(identity, ROLE_HOSPITAL)
        if tx_hash is not None:
            tx_hash = normalize_hash(tx_hash)
        certificate = self.repository.get_or_raise(certificate_id)
        donor_address = normalize_address(certificate.donor_wallet_address)
        cert_hash = self._recompute_hash(certificate)

        record = self.ledger.get_record(donor_address)
        if not record.exists:
            return ReconcileResult(
                certificate_id=certificate_id,
                status=RECONCILE_NOT_ON_LEDGER,
                cert_hash=cert_hash,
            )

        if not compare_hashes(record.cert_hash, cert_hash):
            logger.warning(
                "Ledger holds a different certificate for this donor",
                extra={
                    "certificate_id": certificate_id,
                    "cert_hash": cert_hash,
                    "ledger_hash": record.cert_hash,
                },
            )
            return ReconcileResult(
                certificate_id=certificate_id,
                status=RECONCILE_HASH_MISMATCH,
                cert_hash=cert_hash,
                ledger_hash=record.cert_hash,
                eligible=record.eligible,
                ledger_timestamp=record.timestamp,
            )

        if tx_hash is not None:
            write = self.ledger.find_write(tx_hash)
        else:
            write = self.ledger.latest_write(donor_address)

        if (
            write
            and addresses_equal(write.args.get("donor"), donor_address)
            and compare_hashes(write.cert_hash, record.cert_hash)
        ):
            tx_hash = write.tx_hash
            block_number = write.block_number
        elif tx_hash is None and certificate.tx_hash and compare_hashes(
            certificate.cert_hash, record.cert_hash
        ):
            tx_hash = certificate.tx_hash
            block_number = certificate.block_number
        else:
            logger.warning(
                "Ledger record found but no matching write transaction",
                extra={
                    "certificate_id": certificate_id,
                    "donor_address": donor_address,
                    "tx_hash": tx_hash,
                },
            )
            return ReconcileResult(
                certificate_id=certificate_id,
                status=RECONCILE_TX_UNKNOWN,
                cert_hash=cert_hash,
                ledger_hash=record.cert_hash,
                eligible=record.eligible,
                tx_hash=tx_hash,
                ledger_timestamp=record.timestamp,
            )

        result_fields = dict(
            certificate_id=certificate_id,
            cert_hash=cert_hash,
            ledger_hash=record.cert_hash,
            eligible=record.eligible,
            tx_hash=tx_hash,
            ledger_timestamp=record.timestamp,
        )

        if (
            certificate.eligible == record.eligible
            and compare_hashes(certificate.cert_hash, cert_hash)
            and certificate.tx_hash == tx_hash
        ):
            return ReconcileResult(status=RECONCILE_IN_SYNC, **result_fields)

        try:
            self.repository.update(
                certificate_id,
                cert_hash=cert_hash,
                eligible=record.eligible,
                tx_hash=tx_hash,
                block_number=block_number,
                chain_address=self.ledger.contract_address,
                verified_at=_utc_from_timestamp(record.timestamp),
                reviewed_by=certificate.reviewed_by or identity.user_id,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamUnavailableError("record store", str(e)) from e

        logger.info(
            "Certificate reconciled from ledger",
            extra={"certificate_id": certificate_id, "tx_hash": tx_hash},
        )
        return ReconcileResult(status=RECONCILE_SYNCED, **result_fields)
