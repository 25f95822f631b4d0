"""Donor certificate upload."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bloodlink_api.auth.identity import Identity, ensure_role
from bloodlink_api.certificates.repository import CertificateRepository
from bloodlink_api.errors import ValidationError, UpstreamUnavailableError
from bloodlink_api.hashing import compare_hashes, compute_certificate_hash, normalize_hash
from bloodlink_api.ledger.addresses import normalize_address
from bloodlink_api.models import DonorCertificate
from bloodlink_api.models.profile import ROLE_DONOR
from bloodlink_api.settings import Settings, get_settings
from bloodlink_api.storage.service import FileStore
from bloodlink_api.utils.metrics import certificate_uploads

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 255


class CertificateIntake:
    """Validate, hash, store and register an uploaded certificate."""

    def __init__(self, db: Session, file_store: FileStore, settings: Optional[Settings] = None):
        """Initialize intake."""
        self.db = db
        self.file_store = file_store
        self.settings = settings or get_settings()
        self.repository = CertificateRepository(db)

    def validate_file(self, file_name: Optional[str], content_type: Optional[str], data: Optional[bytes]):
        """Reject files the review workflow does not accept."""
        if not data:
            raise ValidationError("No file provided")

        max_size = self.settings.max_certificate_size_bytes
        if len(data) > max_size:
            raise ValidationError(
                f"File size exceeds {self.settings.max_certificate_size_mb}MB limit"
            )

        allowed_types = self.settings.allowed_certificate_types
        if content_type not in allowed_types:
            raise ValidationError(
                f"File type not allowed. Accepted types: {', '.join(allowed_types)}"
            )

        if not file_name or len(file_name) > MAX_FILE_NAME_LENGTH:
            raise ValidationError("Invalid file name")

    def submit(
        self,
        identity: Identity,
        file_name: str,
        content_type: str,
        data: bytes,
        wallet_address: str,
        client_hash: Optional[str] = None,
    ) -> DonorCertificate:
        """Store a donor's certificate as pending review."""
        ensure_role(identity, ROLE_DONOR)
        try:
            self.validate_file(file_name, content_type, data)
            wallet_address = normalize_address(wallet_address)
            if client_hash is not None:
                client_hash = normalize_hash(client_hash)

            cert_hash = compute_certificate_hash(data)
            if client_hash is not None and not compare_hashes(client_hash, cert_hash):
                logger.warning(
                    "Client-computed hash diverges from server hash",
                    extra={"client_hash": client_hash, "cert_hash": cert_hash},
                )
                raise ValidationError(
                    "Client-computed hash does not match the uploaded file"
                )
        except ValidationError:
            certificate_uploads.labels(outcome="rejected").inc()
            raise

        file_path = self.file_store.upload(data, identity.user_id, file_name, content_type)

        try:
            certificate = self.repository.insert(
                donor_id=identity.user_id,
                file_path=file_path,
                file_name=file_name,
                content_type=content_type,
                file_size=len(data),
                donor_wallet_address=wallet_address,
                cert_hash=cert_hash,
                eligible=None,
                tx_hash=None,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to create certificate record: {e}",
                extra={"file_path": file_path},
            )
            certificate_uploads.labels(outcome="failed").inc()
            self._discard_upload(file_path)
            raise UpstreamUnavailableError("record store", str(e)) from e

        self.db.refresh(certificate)
        certificate_uploads.labels(outcome="stored").inc()
        logger.info(
            "Certificate uploaded",
            extra={
                "certificate_id": certificate.id,
                "donor_id": identity.user_id,
                "cert_hash": cert_hash,
            },
        )
        return certificate

    def _discard_upload(self, file_path: str):
        """Remove an object whose record was never created."""
        try:
            self.file_store.delete(file_path)
        except UpstreamUnavailableError as e:
            logger.error(
                f"Orphaned object left in file store: {file_path}",
                extra={"file_path": file_path, "error": e.detail},
            )
            return
        logger.info("Removed object of unregistered certificate", extra={"file_path": file_path})
