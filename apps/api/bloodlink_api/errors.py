"""Error taxonomy for the certificate verification workflow.

Every error carries a stable ``error_code`` and the HTTP status the API
returns for it. Negative verification verdicts (hash mismatch, no ledger
record) are result values and never raised.
"""

from typing import Optional


class BloodLinkError(Exception):
    """Base class for all workflow errors."""

    error_code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error_code": self.error_code, "detail": self.detail}


class ValidationError(BloodLinkError):
    """Input rejected before any external call."""

    error_code = "VALIDATION_ERROR"
    http_status = 422


class AuthenticationError(BloodLinkError):
    """Missing or invalid credential."""

    error_code = "UNAUTHENTICATED"
    http_status = 401


class AuthorizationError(BloodLinkError):
    """Caller lacks the required role."""

    error_code = "FORBIDDEN"
    http_status = 403


class CertificateNotFoundError(BloodLinkError):
    """Certificate record or its file does not exist."""

    error_code = "CERTIFICATE_NOT_FOUND"
    http_status = 404


class UpstreamUnavailableError(BloodLinkError):
    """A collaborator (file store, record store, identity, ledger node) failed."""

    error_code = "UPSTREAM_UNAVAILABLE"
    http_status = 503

    def __init__(self, service: str, detail: str):
        super().__init__(f"{service} unavailable: {detail}")
        self.service = service

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["service"] = self.service
        return data


class LedgerRejectedError(BloodLinkError):
    """The ledger refused a write; ledger and record state are unchanged."""

    error_code = "LEDGER_REJECTED"
    http_status = 409

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        super().__init__(f"Ledger rejected the write: {reason}")
        self.reason = reason
        self.tx_hash = tx_hash

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        if self.tx_hash:
            data["tx_hash"] = self.tx_hash
        return data


class LedgerTimeoutError(BloodLinkError):
    """A submitted write was not confirmed in time; its outcome is unknown.

    The write may still land. Callers must re-query the ledger (see
    ``ApprovalOrchestrator.reconcile``) before resubmitting.
    """

    error_code = "LEDGER_CONFIRMATION_TIMEOUT"
    http_status = 504

    def __init__(self, tx_hash: str, timeout_seconds: float):
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout_seconds}s; "
            "re-query the ledger before resubmitting"
        )
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["tx_hash"] = self.tx_hash
        return data


class InconsistencyError(BloodLinkError):
    """The ledger write committed but the record store update failed.

    Requires manual reconciliation; the ledger write must not be retried.
    """

    error_code = "LEDGER_DB_INCONSISTENCY"
    http_status = 500

    def __init__(
        self,
        certificate_id: str,
        donor_address: str,
        cert_hash: str,
        tx_hash: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            f"Ledger write {tx_hash} for certificate {certificate_id} succeeded "
            "but the record store update failed; reconcile before resubmitting"
        )
        self.certificate_id = certificate_id
        self.donor_address = donor_address
        self.cert_hash = cert_hash
        self.tx_hash = tx_hash
        self.cause = cause

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            {
                "certificate_id": self.certificate_id,
                "donor_address": self.donor_address,
                "cert_hash": self.cert_hash,
                "tx_hash": self.tx_hash,
            }
        )
        return data
