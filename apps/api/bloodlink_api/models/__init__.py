"""Database models - import all models here for Alembic discovery."""

from bloodlink_api.models.certificate import DonorCertificate
from bloodlink_api.models.ledger import LedgerEvent, LedgerRecord, LedgerState
from bloodlink_api.models.profile import UserProfile

__all__ = [
    "UserProfile",
    "DonorCertificate",
    "LedgerState",
    "LedgerRecord",
    "LedgerEvent",
]
