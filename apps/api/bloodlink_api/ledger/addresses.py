"""Chain address validation."""

import re
from typing import Optional

from bloodlink_api.errors import ValidationError

ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def normalize_address(value: str) -> str:
    """Validate a ``0x``-prefixed 20-byte hex address and lowercase it.

    Addresses are compared case-insensitively everywhere, so the lowercase
    form is the canonical key for ledger records.
    """
    if not is_valid_address(value):
        raise ValidationError(
            "Invalid wallet address format. Expected 0x followed by 40 hex characters"
        )
    return value.lower()


def addresses_equal(left: Optional[str], right: Optional[str]) -> bool:
    if not is_valid_address(left) or not is_valid_address(right):
        return False
    return left.lower() == right.lower()
