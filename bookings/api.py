"""FastAPI application exposing the booking service over HTTP."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .accounts import AccountService
from .calendar_view import CalendarProjector
from .catalog import ServiceCatalog
from .config import Settings, load_settings
from .database import Database
from .errors import DomainError, ErrorKind, OperationResult, T, resolve_locale
from .models import Appointment, CalendarEntry, IdentityClaim, Role, Service, User
from .scheduling import BookingLedger
from .security import AccessDenied, AuthenticationFailed, BearerAuth, TokenAuthority, allow

logger = logging.getLogger("bookings.api")

_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PAST_DATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE_UNIQUE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.SLOT_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class OperationFailed(Exception):
    def __init__(self, error: DomainError) -> None:
        super().__init__(error.code)
        self.error = error


class RegisterRequest(BaseModel):
    name: Any = None
    email: Any = None
    password: Any = None


class RegisterResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=320)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    created_at: datetime


class BookingRequest(BaseModel):
    date: Any = None


class AppointmentResponse(BaseModel):
    id: str
    user_id: str
    date: datetime
    created_at: datetime


class CalendarUser(BaseModel):
    name: str
    email: str


class CalendarEntryResponse(AppointmentResponse):
    user: CalendarUser


class ServiceCreateRequest(BaseModel):
    name: Any = None
    description: Any = None
    price: Any = None
    duration: Any = None


class ServiceResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    price: Decimal
    duration: int
    created_at: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
    )


def appointment_to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        user_id=appointment.user_id,
        date=appointment.date,
        created_at=appointment.created_at,
    )


def calendar_entry_to_response(entry: CalendarEntry) -> CalendarEntryResponse:
    appointment = entry.appointment
    return CalendarEntryResponse(
        id=appointment.id,
        user_id=appointment.user_id,
        date=appointment.date,
        created_at=appointment.created_at,
        user=CalendarUser(name=entry.user_name, email=entry.user_email),
    )


def service_to_response(service: Service) -> ServiceResponse:
    return ServiceResponse(
        id=service.id,
        name=service.name,
        description=service.description,
        price=service.price,
        duration=service.duration,
        created_at=service.created_at,
    )


def _unwrap(result: OperationResult[T]) -> T:
    if not result.success:
        raise OperationFailed(result.error or DomainError(kind=ErrorKind.INTERNAL, code="internal"))
    return result.value  # type: ignore[return-value]


def _validation_fields(exc: RequestValidationError) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part != "body"]
        key = ".".join(location) or "body"
        fields.setdefault(key, str(item.get("type", "invalid")))
    return fields


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    authority: TokenAuthority | None = None,
    clock: Optional[Callable[[], datetime]] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Build the API with its collaborators passed in explicitly."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path, busy_timeout=settings.busy_timeout_seconds)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if authority is None:
        authority = TokenAuthority(settings.require_token_secret(), ttl_seconds=settings.token_ttl_seconds)

    ledger = BookingLedger(database, clock=clock)
    projector = CalendarProjector(database)
    catalog = ServiceCatalog(database)
    accounts = AccountService(database, authority)
    current_claim = BearerAuth(authority)
    default_locale = settings.default_locale

    app = FastAPI(
        title="Hourly Bookings",
        description="Book hour-aligned appointment slots on a shared calendar",
        version="1.0.0",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.ledger = ledger

    def _error_response(request: Request, error: DomainError) -> JSONResponse:
        locale = resolve_locale(request.headers.get("accept-language"), default_locale)
        payload: Dict[str, object] = {
            "kind": error.kind.value,
            "code": error.code,
            "message": error.message(locale),
        }
        if error.fields:
            payload["fields"] = dict(error.fields)
        headers = {"WWW-Authenticate": "Bearer"} if error.kind is ErrorKind.UNAUTHENTICATED else None
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
            content={"error": payload},
            headers=headers,
        )

    @app.exception_handler(OperationFailed)
    async def _handle_operation_failed(request: Request, exc: OperationFailed) -> JSONResponse:
        return _error_response(request, exc.error)

    @app.exception_handler(AuthenticationFailed)
    async def _handle_unauthenticated(request: Request, exc: AuthenticationFailed) -> JSONResponse:
        return _error_response(request, exc.error)

    @app.exception_handler(AccessDenied)
    async def _handle_forbidden(request: Request, exc: AccessDenied) -> JSONResponse:
        return _error_response(request, exc.error)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = DomainError(kind=ErrorKind.INVALID_INPUT, code="invalid_input", fields=_validation_fields(exc))
        return _error_response(request, error)

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return _error_response(request, DomainError(kind=ErrorKind.INTERNAL, code="internal"))

    def require_admin(claim: IdentityClaim = Depends(current_claim)) -> IdentityClaim:
        if not allow(claim, Role.ADMIN):
            logger.warning("User %s attempted an administrator-only request", claim.user_id)
            raise AccessDenied()
        return claim

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    @app.post("/users", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterRequest) -> RegisterResponse:
        user = _unwrap(accounts.register_user(payload.name, payload.email, payload.password))
        return RegisterResponse(user_id=user.id)

    @app.post("/sessions", response_model=TokenResponse)
    def login(payload: LoginRequest) -> TokenResponse:
        token = _unwrap(accounts.login(payload.email, payload.password))
        return TokenResponse(access_token=token, expires_in=authority.ttl_seconds)

    @app.get("/users/me", response_model=UserResponse)
    def read_current_user(claim: IdentityClaim = Depends(current_claim)) -> UserResponse:
        user = database.get_user(claim.user_id)
        if user is None:
            raise AuthenticationFailed()
        return user_to_response(user)

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------
    @app.post("/appointments", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
    def book_appointment(
        payload: BookingRequest,
        claim: IdentityClaim = Depends(current_claim),
    ) -> AppointmentResponse:
        appointment = _unwrap(ledger.book(claim.user_id, payload.date))
        return appointment_to_response(appointment)

    @app.get("/appointments", response_model=List[AppointmentResponse])
    def list_my_appointments(claim: IdentityClaim = Depends(current_claim)) -> List[AppointmentResponse]:
        appointments = _unwrap(ledger.list_by_user(claim.user_id))
        return [appointment_to_response(item) for item in appointments]

    @app.get("/users/{user_id}/appointments", response_model=List[AppointmentResponse])
    def list_user_appointments(
        user_id: str,
        _admin: IdentityClaim = Depends(require_admin),
    ) -> List[AppointmentResponse]:
        appointments = _unwrap(ledger.list_by_user(user_id))
        return [appointment_to_response(item) for item in appointments]

    @app.delete("/appointments/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_appointment(
        appointment_id: str,
        _claim: IdentityClaim = Depends(current_claim),
    ) -> Response:
        _unwrap(ledger.delete(appointment_id))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/calendar/{day}", response_model=List[CalendarEntryResponse])
    def read_calendar(
        day: str,
        _claim: IdentityClaim = Depends(current_claim),
    ) -> List[CalendarEntryResponse]:
        entries = _unwrap(projector.day_view(day))
        return [calendar_entry_to_response(entry) for entry in entries]

    # ------------------------------------------------------------------
    # Service catalog
    # ------------------------------------------------------------------
    @app.get("/services", response_model=List[ServiceResponse])
    def list_services() -> List[ServiceResponse]:
        services = _unwrap(catalog.list_services())
        return [service_to_response(service) for service in services]

    @app.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
    def create_service(
        payload: ServiceCreateRequest,
        claim: IdentityClaim = Depends(current_claim),
    ) -> ServiceResponse:
        service = _unwrap(
            catalog.create_service(
                claim,
                name=payload.name,
                description=payload.description,
                price=payload.price,
                duration=payload.duration,
            )
        )
        return service_to_response(service)

    @app.delete("/services/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_service(
        service_id: str,
        claim: IdentityClaim = Depends(current_claim),
    ) -> Response:
        _unwrap(catalog.delete_service(claim, service_id))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["OperationFailed", "create_app"]
