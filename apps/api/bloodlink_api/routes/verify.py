"""Public verification endpoints (no authentication)."""

from datetime import datetime
from typing import BinaryIO, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from bloodlink_api.errors import ValidationError
from bloodlink_api.hashing import EMPTY_HASH, compute_stream_hash, format_hash_for_display
from bloodlink_api.ledger.client import LedgerClient, get_ledger_client
from bloodlink_api.verification.verifier import Verifier

router = APIRouter(prefix="/v1", tags=["verify"])


class FileVerificationResponse(BaseModel):
    """Verification of a file against a donor's ledger record."""

    donor_address: str
    cert_hash: str
    matches: bool
    eligible: bool
    timestamp: int
    verified_at: Optional[datetime] = None


class AddressVerificationResponse(BaseModel):
    """Ledger record for a donor address."""

    donor_address: str
    found: bool
    cert_hash: Optional[str] = None
    eligible: Optional[bool] = None
    timestamp: Optional[int] = None
    verified_at: Optional[datetime] = None


class HashResponse(BaseModel):
    cert_hash: str
    display: str
    file_name: Optional[str] = None
    size: int


def _hash_upload(stream: BinaryIO) -> tuple[str, int]:
    cert_hash = compute_stream_hash(stream)
    return cert_hash, stream.tell()


@router.post("/verify/file", response_model=FileVerificationResponse)
async def verify_file(
    file: UploadFile = File(...),
    address: str = Form(...),
    ledger: LedgerClient = Depends(get_ledger_client),
):
    """Check whether a file is the certificate recorded for a donor."""
    result = await run_in_threadpool(Verifier(ledger).verify_by_stream, file.file, address)
    return FileVerificationResponse(
        donor_address=result.donor_address,
        cert_hash=result.cert_hash,
        matches=result.matches,
        eligible=result.eligible,
        timestamp=result.timestamp,
        verified_at=result.verified_at,
    )


@router.get("/verify/address/{address}", response_model=AddressVerificationResponse)
async def verify_address(
    address: str,
    ledger: LedgerClient = Depends(get_ledger_client),
):
    """Look up the ledger record for a donor address."""
    result = await run_in_threadpool(Verifier(ledger).verify_by_address, address)
    if result is None:
        return AddressVerificationResponse(donor_address=address.lower(), found=False)
    return AddressVerificationResponse(
        donor_address=result.donor_address,
        found=True,
        cert_hash=result.cert_hash,
        eligible=result.eligible,
        timestamp=result.timestamp,
        verified_at=result.verified_at,
    )


@router.post("/hash", response_model=HashResponse)
async def hash_file(file: UploadFile = File(...)):
    """Compute the certificate hash of a file (donor pre-check)."""
    cert_hash, size = await run_in_threadpool(_hash_upload, file.file)
    if cert_hash == EMPTY_HASH:
        raise ValidationError("No file provided")
    return HashResponse(
        cert_hash=cert_hash,
        display=format_hash_for_display(cert_hash),
        file_name=file.filename,
        size=size,
    )
