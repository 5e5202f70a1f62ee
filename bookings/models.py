"""Domain models for the booking service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class Role(str, Enum):
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class User:
    """Represents a registered account. The password hash never leaves the store."""

    id: str
    name: str
    email: str
    role: Role
    created_at: datetime


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    description: Optional[str]
    price: Decimal
    duration: int
    created_at: datetime


@dataclass(frozen=True)
class Appointment:
    """A committed booking of one hour-aligned slot."""

    id: str
    user_id: str
    date: datetime
    created_at: datetime


@dataclass(frozen=True)
class CalendarEntry:
    appointment: Appointment
    user_name: str
    user_email: str


@dataclass(frozen=True)
class IdentityClaim:
    """Verified caller identity produced by the authentication layer."""

    user_id: str
    role: str


__all__ = ["Appointment", "CalendarEntry", "IdentityClaim", "Role", "Service", "User"]
