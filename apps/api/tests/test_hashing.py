"""Tests for certificate hashing."""

from io import BytesIO

import pytest

from bloodlink_api.errors import ValidationError
from bloodlink_api.hashing import (
    ZERO_HASH,
    bytes32_to_hash,
    compare_hashes,
    compute_certificate_hash,
    compute_stream_hash,
    format_hash_for_display,
    hash_to_bytes32,
    is_valid_hash,
    normalize_hash,
)

ABC_DIGEST = "0xba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
EMPTY_DIGEST = "0xe3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_known_digests():
    """Digest is SHA-256 of the raw bytes with a 0x prefix."""
    assert compute_certificate_hash(b"abc") == ABC_DIGEST
    assert compute_certificate_hash(b"") == EMPTY_DIGEST


def test_hash_format():
    digest = compute_certificate_hash(b"%PDF-1.4 certificate")
    assert digest.startswith("0x")
    assert len(digest) == 66
    assert digest == digest.lower()
    assert is_valid_hash(digest)


def test_hash_is_deterministic():
    data = bytes(range(256)) * 10
    assert compute_certificate_hash(data) == compute_certificate_hash(bytes(data))


def test_single_byte_change_changes_hash():
    original = b"Hemoglobin: 14.1 g/dL"
    tampered = b"Hemoglobin: 14.2 g/dL"
    assert compute_certificate_hash(original) != compute_certificate_hash(tampered)


def test_stream_hash_matches_bytes_hash():
    data = b"x" * (200 * 1024 + 17)
    assert compute_stream_hash(BytesIO(data)) == compute_certificate_hash(data)


def test_rejects_non_bytes():
    with pytest.raises(ValidationError):
        compute_certificate_hash("not bytes")


class TestNormalizeHash:
    def test_lowercases(self):
        assert normalize_hash(ABC_DIGEST.upper().replace("0X", "0x")) == ABC_DIGEST

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "0x1234",
            ABC_DIGEST[2:],
            "0x" + "g" * 64,
            ABC_DIGEST + "00",
        ],
    )
    def test_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            normalize_hash(value)


def test_bytes32_conversion():
    raw = hash_to_bytes32(ABC_DIGEST)
    assert len(raw) == 32
    assert hash_to_bytes32(ABC_DIGEST[2:]) == raw
    assert bytes32_to_hash(raw) == ABC_DIGEST


def test_bytes32_to_hash_rejects_wrong_length():
    with pytest.raises(ValidationError):
        bytes32_to_hash(b"\x00" * 31)


def test_compare_hashes_ignores_case_and_prefix():
    assert compare_hashes(ABC_DIGEST, ABC_DIGEST.upper()[2:])
    assert not compare_hashes(ABC_DIGEST, EMPTY_DIGEST)
    assert not compare_hashes(None, ABC_DIGEST)
    assert not compare_hashes(ABC_DIGEST, "")


def test_zero_hash_is_valid_format():
    assert is_valid_hash(ZERO_HASH)


def test_format_hash_for_display():
    assert format_hash_for_display(ABC_DIGEST) == "0xba7816bf...f20015ad"
    assert format_hash_for_display(None) == "N/A"
    assert format_hash_for_display("0x12") == "0x12"
