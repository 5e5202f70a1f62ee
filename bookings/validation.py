"""Input-shape checks shared by the core operations."""
from __future__ import annotations

import re
import uuid
from decimal import Decimal, InvalidOperation
from typing import Optional

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_NAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

# largest value a SQLite INTEGER column can hold
MAX_DURATION = 2**63 - 1


def new_identifier() -> str:
    return str(uuid.uuid4())


def parse_identifier(value: object) -> Optional[str]:
    """Return the canonical form of a record identifier, or ``None`` if malformed."""

    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        return None


def normalize_email(value: str) -> str:
    return value.strip().lower()


def is_valid_email(value: object) -> bool:
    return isinstance(value, str) and bool(_EMAIL_PATTERN.match(value.strip()))


def parse_price(value: object) -> Optional[Decimal]:
    """Parse a non-negative decimal price. Booleans and non-finite values are rejected."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        value = repr(value)
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


def parse_duration(value: object) -> Optional[int]:
    """Parse a positive whole number of minutes."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        duration = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        duration = int(value)
    elif isinstance(value, str) and value.strip().lstrip("+").isdigit():
        duration = int(value.strip())
    else:
        return None
    if duration <= 0 or duration > MAX_DURATION:
        return None
    return duration


__all__ = [
    "MAX_DURATION",
    "MIN_NAME_LENGTH",
    "MIN_PASSWORD_LENGTH",
    "is_valid_email",
    "new_identifier",
    "normalize_email",
    "parse_duration",
    "parse_identifier",
    "parse_price",
]
