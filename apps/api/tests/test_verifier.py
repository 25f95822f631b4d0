"""Tests for public verification."""

from io import BytesIO

import pytest

from bloodlink_api.errors import ValidationError
from bloodlink_api.hashing import compute_certificate_hash
from bloodlink_api.verification.verifier import Verifier

from conftest import DONOR_ADDRESS, OTHER_ADDRESS

CERT = b"%PDF-1.4 approved certificate"


@pytest.fixture
def verifier(ledger):
    return Verifier(ledger)


def test_file_matches_recorded_certificate(ledger, verifier, clock):
    ledger.write(DONOR_ADDRESS, compute_certificate_hash(CERT), True)

    result = verifier.verify_by_file(CERT, DONOR_ADDRESS.lower())

    assert result.matches is True
    assert result.eligible is True
    assert result.timestamp == int(clock.now)
    assert result.verified_at.timestamp() == int(clock.now)
    assert result.donor_address == DONOR_ADDRESS.lower()
    assert result.cert_hash == compute_certificate_hash(CERT)


def test_different_file_does_not_match(ledger, verifier):
    ledger.write(DONOR_ADDRESS, compute_certificate_hash(CERT), True)

    result = verifier.verify_by_file(CERT + b" ", DONOR_ADDRESS)
    assert result.matches is False


def test_file_for_unknown_donor(verifier):
    result = verifier.verify_by_file(CERT, OTHER_ADDRESS)

    assert result.matches is False
    assert result.eligible is False
    assert result.timestamp == 0
    assert result.verified_at is None


def test_empty_file_rejected(verifier):
    with pytest.raises(ValidationError):
        verifier.verify_by_file(b"", DONOR_ADDRESS)


def test_invalid_address_rejected(verifier):
    with pytest.raises(ValidationError):
        verifier.verify_by_file(CERT, "donor@example.org")
    with pytest.raises(ValidationError):
        verifier.verify_by_address("0x12")


def test_verify_by_address(ledger, verifier):
    ledger.write(DONOR_ADDRESS, compute_certificate_hash(CERT), False)

    result = verifier.verify_by_address(DONOR_ADDRESS.upper().replace("0X", "0x"))

    assert result is not None
    assert result.cert_hash == compute_certificate_hash(CERT)
    assert result.eligible is False


def test_verify_by_address_not_found(verifier):
    assert verifier.verify_by_address(OTHER_ADDRESS) is None


class TestVerifyByStream:
    def test_stream_matches_recorded_certificate(self, ledger, verifier):
        ledger.write(DONOR_ADDRESS, compute_certificate_hash(CERT), True)

        result = verifier.verify_by_stream(BytesIO(CERT), DONOR_ADDRESS)

        assert result.matches is True
        assert result.cert_hash == compute_certificate_hash(CERT)

    def test_large_stream_hashed_in_chunks(self, ledger, verifier):
        large = CERT + b"\0" * (1024 * 1024)
        ledger.write(DONOR_ADDRESS, compute_certificate_hash(large), True)

        assert verifier.verify_by_stream(BytesIO(large), DONOR_ADDRESS).matches is True
        assert verifier.verify_by_stream(BytesIO(large[:-1]), DONOR_ADDRESS).matches is False

    def test_empty_stream_rejected(self, verifier):
        with pytest.raises(ValidationError):
            verifier.verify_by_stream(BytesIO(b""), DONOR_ADDRESS)

    def test_invalid_address_checked_before_reading(self, verifier):
        stream = BytesIO(CERT)
        with pytest.raises(ValidationError):
            verifier.verify_by_stream(stream, "0x12")
        assert stream.tell() == 0
