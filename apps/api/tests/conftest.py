"""Pytest configuration and fixtures."""

import os

# Settings are cached on first use, so the test environment is fixed up front.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_PROVIDER", "local")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from bloodlink_api.auth.identity import Identity, create_access_token
from bloodlink_api.certificates.intake import CertificateIntake
from bloodlink_api.db.base import Base, LedgerBase
from bloodlink_api.ledger.client import LocalLedgerClient
from bloodlink_api.models import DonorCertificate, UserProfile
from bloodlink_api.models.profile import ROLE_DONOR, ROLE_HOSPITAL
from bloodlink_api.storage.service import LocalFileStore


# Use test database URL from environment or default to SQLite in-memory
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

LEDGER_ADMIN = "0x00000000000000000000000000000000000a11ce"
DONOR_ADDRESS = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"
OTHER_ADDRESS = "0x1111111111111111111111111111111111111111"
CERTIFICATE_BYTES = b"%PDF-1.4\n% BloodLink test certificate\nHemoglobin: 14.1 g/dL\n%%EOF\n"


def _make_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite in-memory for fast unit tests
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    # PostgreSQL for integration tests
    return create_engine(url)


class FakeClock:
    """Controllable block clock for the local ledger."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture(scope="function")
def db():
    """
    Create a test record store session.

    For integration tests, use TEST_DATABASE_URL environment variable
    to point to a real PostgreSQL instance.
    """
    engine = _make_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def ledger_session_factory():
    """Separate in-memory database for the local ledger."""
    engine = _make_engine("sqlite://")
    LedgerBase.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    LedgerBase.metadata.drop_all(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(ledger_session_factory, clock) -> LocalLedgerClient:
    """Local ledger deployed with LEDGER_ADMIN as admin and operator."""
    return LocalLedgerClient(
        ledger_session_factory,
        operator_address=LEDGER_ADMIN,
        clock=clock,
    )


@pytest.fixture
def file_store(tmp_path) -> LocalFileStore:
    return LocalFileStore(str(tmp_path / "certificates"))


@pytest.fixture
def donor(db: Session) -> UserProfile:
    """Create a donor profile."""
    profile = UserProfile(
        email="donor@example.org",
        full_name="Test Donor",
        role=ROLE_DONOR,
        blood_type="A+",
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def hospital(db: Session) -> UserProfile:
    """Create a hospital reviewer profile."""
    profile = UserProfile(
        email="reviewer@example.org",
        full_name="Test Reviewer",
        role=ROLE_HOSPITAL,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def donor_identity(donor: UserProfile) -> Identity:
    return Identity(user_id=donor.id, role=donor.role, email=donor.email)


@pytest.fixture
def hospital_identity(hospital: UserProfile) -> Identity:
    return Identity(user_id=hospital.id, role=hospital.role, email=hospital.email)


@pytest.fixture
def pending_certificate(db: Session, file_store, donor_identity) -> DonorCertificate:
    """A certificate uploaded by the donor and awaiting review."""
    intake = CertificateIntake(db, file_store)
    return intake.submit(
        donor_identity,
        "blood_test.pdf",
        "application/pdf",
        CERTIFICATE_BYTES,
        DONOR_ADDRESS,
    )


@pytest.fixture
def client(db: Session, ledger, file_store):
    """API client wired to the test record store, ledger and file store."""
    from bloodlink_api.db.session import get_db
    from bloodlink_api.ledger.client import get_ledger_client
    from bloodlink_api.main import app
    from bloodlink_api.storage.service import get_file_store

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger_client] = lambda: ledger
    app.dependency_overrides[get_file_store] = lambda: file_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def donor_headers(donor: UserProfile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(donor.id)}"}


@pytest.fixture
def hospital_headers(hospital: UserProfile) -> dict:
    return {"Authorization": f"Bearer {create_access_token(hospital.id)}"}
