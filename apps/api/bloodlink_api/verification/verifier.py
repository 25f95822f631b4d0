"""Public certificate verification against the ledger.

Verification never reads the record store, so any party with ledger access
can check a certificate. A mismatch or a missing record is a verdict, not
an error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO, Optional

from bloodlink_api.errors import ValidationError
from bloodlink_api.hashing import EMPTY_HASH, compute_certificate_hash, compute_stream_hash
from bloodlink_api.ledger.addresses import normalize_address
from bloodlink_api.ledger.client import LedgerClient
from bloodlink_api.utils.metrics import verifications

logger = logging.getLogger(__name__)


def _timestamp_to_datetime(timestamp: int) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class FileVerification:
    donor_address: str
    cert_hash: str
    eligible: bool
    timestamp: int
    matches: bool

    @property
    def verified_at(self) -> Optional[datetime]:
        return _timestamp_to_datetime(self.timestamp)


@dataclass(frozen=True)
class AddressVerification:
    donor_address: str
    cert_hash: str
    eligible: bool
    timestamp: int

    @property
    def verified_at(self) -> Optional[datetime]:
        return _timestamp_to_datetime(self.timestamp)


class Verifier:
    """Read-only verification workflows."""

    def __init__(self, ledger: LedgerClient):
        """Initialize verifier."""
        self.ledger = ledger

    def verify_by_file(self, file_bytes: bytes, address: str) -> FileVerification:
        """Hash the supplied file and compare it with the donor's ledger record."""
        if not file_bytes:
            raise ValidationError("No file provided")
        donor_address = normalize_address(address)
        return self._verify_hash(donor_address, compute_certificate_hash(file_bytes))

    def verify_by_stream(self, stream: BinaryIO, address: str) -> FileVerification:
        """Same as verify_by_file, hashing the upload in chunks."""
        donor_address = normalize_address(address)
        cert_hash = compute_stream_hash(stream)
        if cert_hash == EMPTY_HASH:
            raise ValidationError("No file provided")
        return self._verify_hash(donor_address, cert_hash)

    def _verify_hash(self, donor_address: str, cert_hash: str) -> FileVerification:
        view = self.ledger.read(donor_address, cert_hash)
        verdict = "match" if view.matches else "mismatch"
        verifications.labels(method="file", verdict=verdict).inc()
        logger.info(
            "Verified certificate file",
            extra={"donor_address": donor_address, "cert_hash": cert_hash, "verdict": verdict},
        )
        return FileVerification(
            donor_address=donor_address,
            cert_hash=cert_hash,
            eligible=view.eligible,
            timestamp=view.timestamp,
            matches=view.matches,
        )

    def verify_by_address(self, address: str) -> Optional[AddressVerification]:
        """Look up the ledger record for a donor; None when nothing was written."""
        donor_address = normalize_address(address)
        record = self.ledger.get_record(donor_address)
        if not record.exists:
            verifications.labels(method="address", verdict="not_found").inc()
            return None
        verifications.labels(method="address", verdict="found").inc()
        return AddressVerification(
            donor_address=donor_address,
            cert_hash=record.cert_hash,
            eligible=record.eligible,
            timestamp=record.timestamp,
        )
