"""Certificate content hashing.

The same digest is produced for the donor's pre-check, the authoritative
compute during approval and public verification: SHA-256 over the raw file
bytes, rendered as ``0x`` followed by 64 lowercase hex characters.
"""

import hashlib
import re
from typing import BinaryIO, Optional

from bloodlink_api.errors import ValidationError

HASH_PREFIX = "0x"
ZERO_HASH = HASH_PREFIX + "0" * 64
EMPTY_HASH = HASH_PREFIX + hashlib.sha256(b"").hexdigest()

_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_CHUNK_SIZE = 64 * 1024


def compute_certificate_hash(data: bytes) -> str:
    """Compute the SHA-256 digest of certificate bytes."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ValidationError(
            f"Invalid input type {type(data).__name__}. Expected bytes"
        )
    return HASH_PREFIX + hashlib.sha256(data).hexdigest()


def compute_stream_hash(stream: BinaryIO) -> str:
    """Compute the digest of a binary stream without loading it at once."""
    digest = hashlib.sha256()
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        digest.update(chunk)
    return HASH_PREFIX + digest.hexdigest()


def is_valid_hash(value: Optional[str]) -> bool:
    return bool(value) and isinstance(value, str) and bool(_HASH_RE.match(value))


def normalize_hash(value: str) -> str:
    """Validate a ``0x``-prefixed 32-byte hex digest and lowercase it."""
    if not is_valid_hash(value):
        raise ValidationError(
            "Invalid certificate hash. Expected 0x followed by 64 hex characters"
        )
    return value.lower()


def hash_to_bytes32(value: str) -> bytes:
    """Convert a hex digest (with or without prefix) to 32 raw bytes."""
    if isinstance(value, str) and not value.startswith(HASH_PREFIX):
        value = HASH_PREFIX + value
    return bytes.fromhex(normalize_hash(value)[2:])


def bytes32_to_hash(value: bytes) -> str:
    if len(value) != 32:
        raise ValidationError(f"Expected 32 bytes, got {len(value)}")
    return HASH_PREFIX + value.hex()


def compare_hashes(hash1: Optional[str], hash2: Optional[str]) -> bool:
    """Compare two digests ignoring case and the 0x prefix."""
    if not hash1 or not hash2:
        return False
    return _strip(hash1) == _strip(hash2)


def format_hash_for_display(
    value: Optional[str], prefix_length: int = 10, suffix_length: int = 8
) -> str:
    """Shorten a digest for display, e.g. ``0x1234abcd...89abcdef``."""
    if not value or len(value) < prefix_length + suffix_length:
        return value or "N/A"
    return f"{value[:prefix_length]}...{value[-suffix_length:]}"


def _strip(value: str) -> str:
    value = value.lower()
    return value[2:] if value.startswith(HASH_PREFIX) else value
