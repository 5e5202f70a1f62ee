"""Read-only day view over the booking ledger."""
from __future__ import annotations

import logging
from typing import List

from .database import Database
from .errors import ErrorKind, OperationResult, StoreError
from .models import CalendarEntry
from .timeutils import day_bounds, parse_day

logger = logging.getLogger("bookings.calendar")


class CalendarProjector:
    """Answer "what is booked on day D", with the owner of each booking.

    Days are partitioned in UTC: ``00:00:00.000`` through ``23:59:59.999``.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def day_view(self, date_string: str) -> OperationResult[List[CalendarEntry]]:
        day = parse_day(date_string)
        if day is None:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, "invalid_date", {"date": "invalid_date"})

        start, end = day_bounds(day)
        try:
            entries = self._database.list_appointments_between(start, end)
        except StoreError:
            logger.exception("Failed to load calendar for %s", day.isoformat())
            return OperationResult.fail(ErrorKind.INTERNAL)
        return OperationResult.ok(entries)


__all__ = ["CalendarProjector"]
