"""Certificate record store queries."""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bloodlink_api.errors import CertificateNotFoundError, UpstreamUnavailableError
from bloodlink_api.models import DonorCertificate


class CertificateRepository:
    """Row-level access to donor certificates.

    Writes only add/flush; the calling workflow owns the commit.
    """

    def __init__(self, db: Session):
        """Initialize repository."""
        self.db = db

    def get(self, certificate_id: str) -> Optional[DonorCertificate]:
        try:
            return (
                self.db.query(DonorCertificate)
                .filter(DonorCertificate.id == certificate_id)
                .first()
            )
        except SQLAlchemyError as e:
            raise UpstreamUnavailableError("record store", str(e)) from e

    def get_or_raise(self, certificate_id: str) -> DonorCertificate:
        certificate = self.get(certificate_id)
        if not certificate:
            raise CertificateNotFoundError(f"Certificate {certificate_id} not found")
        return certificate

    def insert(self, **fields) -> DonorCertificate:
        certificate = DonorCertificate(**fields)
        self.db.add(certificate)
        self.db.flush()
        return certificate

    def update(self, certificate_id: str, **fields) -> DonorCertificate:
        """Apply column updates to one certificate row."""
        certificate = self.get_or_raise(certificate_id)
        for name, value in fields.items():
            if not hasattr(DonorCertificate, name):
                raise AttributeError(f"DonorCertificate has no column {name}")
            setattr(certificate, name, value)
        self.db.flush()
        return certificate

    def list_pending(self) -> list[DonorCertificate]:
        """Certificates awaiting review, newest first."""
        return self._list(
            self.db.query(DonorCertificate)
            .filter(DonorCertificate.eligible.is_(None))
            .order_by(DonorCertificate.created_at.desc())
        )

    def list_decided(self) -> list[DonorCertificate]:
        """Approved or rejected certificates, most recently verified first."""
        return self._list(
            self.db.query(DonorCertificate)
            .filter(DonorCertificate.eligible.isnot(None))
            .order_by(DonorCertificate.verified_at.desc())
        )

    def list_for_donor(self, donor_id: str) -> list[DonorCertificate]:
        return self._list(
            self.db.query(DonorCertificate)
            .filter(DonorCertificate.donor_id == donor_id)
            .order_by(DonorCertificate.created_at.desc())
        )

    @staticmethod
    def _list(query) -> list[DonorCertificate]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            raise UpstreamUnavailableError("record store", str(e)) from e
