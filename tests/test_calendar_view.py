from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bookings.calendar_view import CalendarProjector
from bookings.database import Database
from bookings.errors import ErrorKind
from bookings.scheduling import BookingLedger

NOW = datetime(2025, 2, 1, tzinfo=timezone.utc)


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "bookings.sqlite3")
    db.initialize()
    return db


def test_day_view_returns_only_that_utc_day_with_owners(database: Database) -> None:
    ana = database.create_user("Ana Souza", "ana@example.com", "secret-pw")
    bruno = database.create_user("Bruno Lima", "bruno@example.com", "secret-pw")
    ledger = BookingLedger(database, clock=lambda: NOW)

    for user, raw in (
        (ana, "2025-02-28T23:59:59"),
        (bruno, "2025-03-01T23:10:00"),
        (ana, "2025-03-01T00:00:00"),
        (bruno, "2025-03-01T12:45:00"),
        (ana, "2025-03-02T00:00:00"),
    ):
        assert ledger.book(user.id, raw).success

    result = CalendarProjector(database).day_view("2025-03-01")

    assert result.success
    entries = result.value
    assert [entry.appointment.date.hour for entry in entries] == [0, 12, 23]
    assert [entry.user_email for entry in entries] == [
        "ana@example.com",
        "bruno@example.com",
        "bruno@example.com",
    ]
    assert entries[0].user_name == "Ana Souza"
    assert entries[1].user_name == "Bruno Lima"
    for entry in entries:
        assert entry.appointment.date.date().isoformat() == "2025-03-01"


def test_day_view_of_empty_day_is_empty(database: Database) -> None:
    result = CalendarProjector(database).day_view("2025-03-01")
    assert result.success
    assert result.value == []


@pytest.mark.parametrize("raw", ["", "March 1st", "2025-02-30", "2025/03/01"])
def test_day_view_rejects_unparseable_days(database: Database, raw: str) -> None:
    result = CalendarProjector(database).day_view(raw)
    assert result.error.kind is ErrorKind.INVALID_INPUT
    assert result.error.code == "invalid_date"


@pytest.mark.parametrize("raw", ["9999-12-31", "0001-01-01"])
def test_day_view_handles_first_and_last_calendar_days(database: Database, raw: str) -> None:
    result = CalendarProjector(database).day_view(raw)
    assert result.success
    assert result.value == []


def test_day_view_of_last_calendar_day_includes_its_bookings(database: Database) -> None:
    ana = database.create_user("Ana Souza", "ana@example.com", "secret-pw")
    ledger = BookingLedger(database, clock=lambda: NOW)
    assert ledger.book(ana.id, "9999-12-31T23:30:00Z").success

    result = CalendarProjector(database).day_view("9999-12-31")
    assert [entry.user_email for entry in result.value] == ["ana@example.com"]
