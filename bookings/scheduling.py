"""Booking ledger: hour-aligned, exclusive appointment slots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .database import Database
from .errors import ErrorKind, OperationResult, ReferenceViolation, StoreError, UniqueViolation
from .models import Appointment
from .timeutils import RawInstant, normalize_to_hour, parse_instant, utc_now
from .validation import parse_identifier

logger = logging.getLogger("bookings.scheduling")


class BookingLedger:
    """Create, list and delete appointments while keeping one booking per hour."""

    def __init__(self, database: Database, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._database = database
        self._clock = clock or utc_now

    def book(self, user_id: str, raw_instant: RawInstant) -> OperationResult[Appointment]:
        """Reserve the hour containing ``raw_instant`` for ``user_id``.

        Checks run in order and the first failure wins: unparseable date,
        slot already in the past, malformed user id, slot already taken.
        """

        requested = parse_instant(raw_instant)
        if requested is None:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, "invalid_date", {"date": "invalid_date"})

        slot = normalize_to_hour(requested)
        if slot < self._now():
            return OperationResult.fail(ErrorKind.PAST_DATE)

        owner = parse_identifier(user_id)
        if owner is None:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, "invalid_identifier", {"user_id": "invalid_identifier"})

        try:
            appointment = self._database.insert_appointment(owner, slot)
        except UniqueViolation:
            logger.info("Rejected booking for %s: slot %s already taken", owner, slot.isoformat())
            return OperationResult.fail(ErrorKind.SLOT_CONFLICT)
        except ReferenceViolation:
            logger.warning("Rejected booking for unknown user %s", owner)
            return OperationResult.fail(ErrorKind.INTERNAL)
        except StoreError:
            logger.exception("Failed to store appointment for %s at %s", owner, slot.isoformat())
            return OperationResult.fail(ErrorKind.INTERNAL)

        logger.info("User %s booked %s (appointment %s)", owner, slot.isoformat(), appointment.id)
        return OperationResult.ok(appointment)

    def list_by_user(self, user_id: str) -> OperationResult[List[Appointment]]:
        owner = parse_identifier(user_id)
        if owner is None:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, "invalid_identifier", {"user_id": "invalid_identifier"})
        try:
            appointments = self._database.list_appointments_for_user(owner)
        except StoreError:
            logger.exception("Failed to list appointments for %s", owner)
            return OperationResult.fail(ErrorKind.INTERNAL)
        return OperationResult.ok(appointments)

    def delete(self, appointment_id: str) -> OperationResult[None]:
        target = parse_identifier(appointment_id)
        if target is None:
            return OperationResult.fail(
                ErrorKind.INVALID_INPUT, "invalid_identifier", {"appointment_id": "invalid_identifier"}
            )
        try:
            deleted = self._database.delete_appointment(target)
        except StoreError:
            logger.exception("Failed to delete appointment %s", target)
            return OperationResult.fail(ErrorKind.INTERNAL)
        if not deleted:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "appointment_not_found")

        logger.info("Deleted appointment %s", target)
        return OperationResult.ok(None)

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now


__all__ = ["BookingLedger"]
