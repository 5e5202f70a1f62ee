"""Error taxonomy shared by the booking core and its HTTP boundary."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    PAST_DATE = "past_date"
    SLOT_CONFLICT = "slot_conflict"
    NOT_FOUND = "not_found"
    DUPLICATE_UNIQUE = "duplicate_unique"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


_MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "invalid_input": "The request contains invalid fields.",
        "invalid_date": "The date could not be understood.",
        "invalid_identifier": "The identifier is not valid.",
        "past_date": "The requested time has already passed.",
        "slot_conflict": "This time slot is already booked.",
        "appointment_not_found": "Appointment not found.",
        "service_not_found": "Service not found.",
        "duplicate_email": "This e-mail address is already in use.",
        "duplicate_unique": "A record with these details already exists.",
        "unauthenticated": "Authentication is required.",
        "invalid_credentials": "Invalid e-mail or password.",
        "forbidden": "You are not allowed to perform this action.",
        "internal": "Internal server error.",
    },
    "pt": {
        "invalid_input": "A requisição contém campos inválidos.",
        "invalid_date": "Data inválida.",
        "invalid_identifier": "Identificador inválido.",
        "past_date": "Não é possível agendar em uma data passada.",
        "slot_conflict": "Este horário já está ocupado.",
        "appointment_not_found": "Agendamento não encontrado.",
        "service_not_found": "Serviço não encontrado.",
        "duplicate_email": "Este e-mail já está em uso.",
        "duplicate_unique": "Já existe um registro com estes dados.",
        "unauthenticated": "Autenticação necessária.",
        "invalid_credentials": "E-mail ou senha inválidos.",
        "forbidden": "Você não tem permissão para realizar esta ação.",
        "internal": "Erro interno no servidor.",
    },
}

DEFAULT_LOCALE = "en"
SUPPORTED_LOCALES = tuple(_MESSAGES)


def resolve_locale(accept_language: Optional[str], default: str = DEFAULT_LOCALE) -> str:
    """Pick the best supported locale from an ``Accept-Language`` header."""

    if default not in _MESSAGES:
        default = DEFAULT_LOCALE
    if not accept_language:
        return default

    candidates = []
    for index, part in enumerate(accept_language.split(",")):
        pieces = part.strip().split(";")
        tag = pieces[0].strip().lower()
        if not tag or tag == "*":
            continue
        weight = 1.0
        for param in pieces[1:]:
            key, _, raw = param.strip().partition("=")
            if key == "q":
                try:
                    weight = float(raw)
                except ValueError:
                    weight = 0.0
        candidates.append((-weight, index, tag))

    for negative_weight, _, tag in sorted(candidates):
        if negative_weight >= 0:
            continue
        primary = tag.split("-", 1)[0]
        if primary in _MESSAGES:
            return primary
    return default


def message_for(code: str, locale: str = DEFAULT_LOCALE) -> str:
    catalog = _MESSAGES.get(locale) or _MESSAGES[DEFAULT_LOCALE]
    if code in catalog:
        return catalog[code]
    return _MESSAGES[DEFAULT_LOCALE].get(code, catalog["internal"])


@dataclass(frozen=True)
class DomainError:
    """A rejected operation: its kind, a stable code and optional field errors."""

    kind: ErrorKind
    code: str
    fields: Dict[str, str] = field(default_factory=dict)

    def message(self, locale: str = DEFAULT_LOCALE) -> str:
        return message_for(self.code, locale)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a core operation: either a value or a :class:`DomainError`."""

    success: bool
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        code: Optional[str] = None,
        fields: Optional[Dict[str, str]] = None,
    ) -> "OperationResult[T]":
        error = DomainError(kind=kind, code=code or kind.value, fields=dict(fields or {}))
        return cls(success=False, error=error)


class StoreError(Exception):
    """Raised by the storage adapter for failures it cannot classify further."""


class UniqueViolation(StoreError):
    """A write collided with a uniqueness constraint."""

    def __init__(self, table: str, column: str) -> None:
        super().__init__(f"Unique constraint violated on {table}.{column}")
        self.table = table
        self.column = column


class ReferenceViolation(StoreError):
    """A write referenced a row that does not exist."""


__all__ = [
    "DEFAULT_LOCALE",
    "DomainError",
    "ErrorKind",
    "OperationResult",
    "ReferenceViolation",
    "StoreError",
    "SUPPORTED_LOCALES",
    "UniqueViolation",
    "message_for",
    "resolve_locale",
]
