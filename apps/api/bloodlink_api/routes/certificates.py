"""Certificate upload and review endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from bloodlink_api.auth.identity import Identity, get_current_identity, require_role
from bloodlink_api.certificates.intake import CertificateIntake
from bloodlink_api.certificates.orchestrator import ApprovalOrchestrator
from bloodlink_api.certificates.repository import CertificateRepository
from bloodlink_api.db.session import get_db
from bloodlink_api.errors import AuthorizationError
from bloodlink_api.ledger.client import LedgerClient, get_ledger_client
from bloodlink_api.models.profile import ROLE_DONOR, ROLE_HOSPITAL
from bloodlink_api.settings import Settings, get_settings
from bloodlink_api.storage.service import FileStore, get_file_store

router = APIRouter(prefix="/v1/certificates", tags=["certificates"])


class CertificateResponse(BaseModel):
    """Certificate record."""

    id: str
    donor_id: str
    file_path: str
    file_name: Optional[str] = None
    content_type: Optional[str] = None
    file_size: Optional[int] = None
    donor_wallet_address: str
    cert_hash: Optional[str] = None
    eligible: Optional[bool] = None
    status: str
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    chain_address: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    created_at: datetime
    verified_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class DecisionRequest(BaseModel):
    """Reviewer decision request."""

    eligible: bool = Field(..., description="Approve (true) or reject (false)")
    donor_wallet_address: Optional[str] = Field(
        None, description="Donor address to record; defaults to the address claimed at upload"
    )
    admin_notes: Optional[str] = Field(None, max_length=2000)


class DecisionResponse(BaseModel):
    """Confirmed decision."""

    certificate_id: str
    cert_hash: str
    tx_hash: str
    block_number: int
    contract_address: str
    eligible: bool
    verified_at: datetime


class ReconcileResponse(BaseModel):
    """Reconciliation outcome."""

    certificate_id: str
    status: str  # synced, in_sync, not_on_ledger, hash_mismatch, tx_unknown
    cert_hash: str
    ledger_hash: Optional[str] = None
    eligible: Optional[bool] = None
    tx_hash: Optional[str] = None
    ledger_timestamp: Optional[int] = None


@router.post("", response_model=CertificateResponse, status_code=status.HTTP_201_CREATED)
async def upload_certificate(
    file: UploadFile = File(...),
    wallet_address: str = Form(...),
    client_hash: Optional[str] = Form(None),
    identity: Identity = Depends(require_role(ROLE_DONOR)),
    db: Session = Depends(get_db),
    file_store: FileStore = Depends(get_file_store),
    settings: Settings = Depends(get_settings),
):
    """Upload a certificate for review."""
    # One byte past the limit is enough for intake to reject an oversize file
    data = await file.read(settings.max_certificate_size_bytes + 1)
    intake = CertificateIntake(db, file_store, settings=settings)
    return await run_in_threadpool(
        intake.submit,
        identity,
        file.filename,
        file.content_type,
        data,
        wallet_address,
        client_hash,
    )


@router.get("/mine", response_model=list[CertificateResponse])
async def list_my_certificates(
    identity: Identity = Depends(require_role(ROLE_DONOR)),
    db: Session = Depends(get_db),
):
    """List the caller's certificates, newest first."""
    return CertificateRepository(db).list_for_donor(identity.user_id)


@router.get("/pending", response_model=list[CertificateResponse])
async def list_pending_certificates(
    identity: Identity = Depends(require_role(ROLE_HOSPITAL)),
    db: Session = Depends(get_db),
):
    """List certificates awaiting review."""
    return CertificateRepository(db).list_pending()


@router.get("/verified", response_model=list[CertificateResponse])
async def list_verified_certificates(
    identity: Identity = Depends(require_role(ROLE_HOSPITAL)),
    db: Session = Depends(get_db),
):
    """List approved and rejected certificates."""
    return CertificateRepository(db).list_decided()


@router.get("/{certificate_id}", response_model=CertificateResponse)
async def get_certificate(
    certificate_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Get a certificate visible to the caller."""
    certificate = CertificateRepository(db).get_or_raise(certificate_id)
    if not identity.is_hospital and certificate.donor_id != identity.user_id:
        raise AuthorizationError("Certificate belongs to another donor")
    return certificate


@router.post("/{certificate_id}/decision", response_model=DecisionResponse)
def decide_certificate(
    certificate_id: str,
    request: DecisionRequest,
    identity: Identity = Depends(require_role(ROLE_HOSPITAL)),
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger_client),
    file_store: FileStore = Depends(get_file_store),
):
    """Approve or reject a certificate; blocks until the ledger confirms."""
    orchestrator = ApprovalOrchestrator(db, ledger, file_store)
    result = orchestrator.decide(
        identity,
        certificate_id,
        request.donor_wallet_address,
        request.eligible,
        request.admin_notes,
    )
    return DecisionResponse(**result.__dict__)


@router.post("/{certificate_id}/reconcile", response_model=ReconcileResponse)
def reconcile_certificate(
    certificate_id: str,
    tx_hash: Optional[str] = Query(
        None, description="Transaction hash reported by a timed-out decision"
    ),
    identity: Identity = Depends(require_role(ROLE_HOSPITAL)),
    db: Session = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger_client),
    file_store: FileStore = Depends(get_file_store),
):
    """Re-read the ledger and repair the certificate record if needed."""
    orchestrator = ApprovalOrchestrator(db, ledger, file_store)
    result = orchestrator.reconcile(identity, certificate_id, tx_hash=tx_hash)
    return ReconcileResponse(**result.__dict__)
