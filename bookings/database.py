"""SQLite-backed persistence for users, services and appointments."""
from __future__ import annotations

import re
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional

from passlib.context import CryptContext

from .config import default_database_path
from .errors import ReferenceViolation, StoreError, UniqueViolation
from .models import Appointment, CalendarEntry, Role, Service, User
from .timeutils import deserialize_instant, serialize_instant
from .validation import new_identifier, normalize_email

_UNIQUE_PATTERN = re.compile(r"UNIQUE constraint failed: (\w+)\.(\w+)")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return default_database_path()


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map driver exceptions onto the store's exception types."""

    try:
        yield
    except sqlite3.IntegrityError as exc:
        message = str(exc)
        match = _UNIQUE_PATTERN.search(message)
        if match:
            raise UniqueViolation(match.group(1), match.group(2)) from exc
        if "FOREIGN KEY" in message:
            raise ReferenceViolation(message) from exc
        raise StoreError(message) from exc
    except sqlite3.Error as exc:
        raise StoreError(str(exc)) from exc


class Database:
    """Simple wrapper around SQLite for persisting users, services and appointments.

    Every call opens its own connection, so one instance can be shared by
    concurrent request handlers.
    """

    def __init__(self, path: Path, *, busy_timeout: float = 5.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._busy_timeout = busy_timeout

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self._path,
            timeout=self._busy_timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        with _translate_errors(), closing(self._connect()) as conn:
            yield conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside ``BEGIN IMMEDIATE`` so concurrent writers serialize."""

        with self._session() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'CLIENT' CHECK(role IN ('CLIENT', 'ADMIN')),
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS services (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    price TEXT NOT NULL,
                    duration INTEGER NOT NULL CHECK(duration > 0),
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS appointments (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id),
                    date TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_appointments_user_id ON appointments(user_id, date);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        *,
        role: Role = Role.CLIENT,
    ) -> User:
        """Create a new user. Raises :class:`UniqueViolation` for a taken email."""

        if not password:
            raise ValueError("Password must not be empty")

        user = User(
            id=new_identifier(),
            name=name,
            email=normalize_email(email),
            role=Role(role),
            created_at=_current_timestamp(),
        )
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO users (id, name, email, password_hash, role, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user.id,
                    user.name,
                    user.email,
                    _hash_password(password),
                    user.role.value,
                    serialize_instant(user.created_at),
                ),
            )
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at, email").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------
    def create_service(
        self,
        *,
        name: str,
        description: Optional[str],
        price: Decimal,
        duration: int,
    ) -> Service:
        service = Service(
            id=new_identifier(),
            name=name,
            description=description,
            price=price,
            duration=duration,
            created_at=_current_timestamp(),
        )
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO services (id, name, description, price, duration, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    service.id,
                    service.name,
                    service.description,
                    str(service.price),
                    service.duration,
                    serialize_instant(service.created_at),
                ),
            )
        return service

    def list_services(self) -> List[Service]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM services ORDER BY name, created_at").fetchall()
        return [self._row_to_service(row) for row in rows]

    def get_service(self, service_id: str) -> Optional[Service]:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_service(row)

    def delete_service(self, service_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM services WHERE id = ?", (service_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------
    def insert_appointment(self, user_id: str, slot: datetime) -> Appointment:
        """Atomically claim ``slot`` for ``user_id``.

        Raises :class:`UniqueViolation` when the slot is already taken, whether
        the existing row is seen by the check or only by the constraint.
        """

        appointment = Appointment(
            id=new_identifier(),
            user_id=user_id,
            date=slot,
            created_at=_current_timestamp(),
        )
        slot_key = serialize_instant(slot)
        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM appointments WHERE date = ?",
                (slot_key,),
            ).fetchone()
            if existing is not None:
                raise UniqueViolation("appointments", "date")
            conn.execute(
                "INSERT INTO appointments (id, user_id, date, created_at) VALUES (?, ?, ?, ?)",
                (
                    appointment.id,
                    appointment.user_id,
                    slot_key,
                    serialize_instant(appointment.created_at),
                ),
            )
        return appointment

    def get_appointment_at(self, slot: datetime) -> Optional[Appointment]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM appointments WHERE date = ?",
                (serialize_instant(slot),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_appointment(row)

    def list_appointments_for_user(self, user_id: str) -> List[Appointment]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM appointments WHERE user_id = ? ORDER BY date ASC",
                (user_id,),
            ).fetchall()
        return [self._row_to_appointment(row) for row in rows]

    def list_appointments_between(self, start: datetime, end: datetime) -> List[CalendarEntry]:
        """Return appointments with ``start <= date <= end`` joined with their owners."""

        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT a.id, a.user_id, a.date, a.created_at,
                       u.name AS user_name, u.email AS user_email
                  FROM appointments AS a
                  JOIN users AS u ON u.id = a.user_id
                 WHERE a.date >= ? AND a.date <= ?
                 ORDER BY a.date ASC
                """,
                (serialize_instant(start), serialize_instant(end)),
            ).fetchall()
        return [
            CalendarEntry(
                appointment=self._row_to_appointment(row),
                user_name=str(row["user_name"]),
                user_email=str(row["user_email"]),
            )
            for row in rows
        ]

    def delete_appointment(self, appointment_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM appointments WHERE id = ?", (appointment_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            role=Role(str(row["role"])),
            created_at=deserialize_instant(str(row["created_at"])),
        )

    def _row_to_service(self, row: sqlite3.Row) -> Service:
        return Service(
            id=str(row["id"]),
            name=str(row["name"]),
            description=row["description"],
            price=Decimal(str(row["price"])),
            duration=int(row["duration"]),
            created_at=deserialize_instant(str(row["created_at"])),
        )

    def _row_to_appointment(self, row: sqlite3.Row) -> Appointment:
        return Appointment(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            date=deserialize_instant(str(row["date"])),
            created_at=deserialize_instant(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
