"""User registration and password login."""
from __future__ import annotations

import logging
from typing import Dict

from .database import Database
from .errors import ErrorKind, OperationResult, StoreError, UniqueViolation
from .models import IdentityClaim, Role, User
from .security import TokenAuthority
from .validation import MIN_NAME_LENGTH, MIN_PASSWORD_LENGTH, is_valid_email

logger = logging.getLogger("bookings.accounts")


class AccountService:
    def __init__(self, database: Database, authority: TokenAuthority) -> None:
        self._database = database
        self._authority = authority

    def register_user(self, name: object, email: object, password: object) -> OperationResult[User]:
        """Create a ``CLIENT`` account."""

        errors: Dict[str, str] = {}
        if not isinstance(name, str) or len(name.strip()) < MIN_NAME_LENGTH:
            errors["name"] = "too_short"
        if not is_valid_email(email):
            errors["email"] = "invalid_email"
        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = "too_short"
        if errors:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, fields=errors)

        try:
            user = self._database.create_user(
                name.strip(),  # type: ignore[union-attr]
                email,  # type: ignore[arg-type]
                password,  # type: ignore[arg-type]
                role=Role.CLIENT,
            )
        except UniqueViolation:
            return OperationResult.fail(ErrorKind.DUPLICATE_UNIQUE, "duplicate_email", {"email": "duplicate_email"})
        except StoreError:
            logger.exception("Failed to register user")
            return OperationResult.fail(ErrorKind.INTERNAL)

        logger.info("Registered user %s", user.id)
        return OperationResult.ok(user)

    def login(self, email: str, password: str) -> OperationResult[str]:
        """Verify credentials and issue a bearer token."""

        try:
            user = self._database.authenticate_user(email, password)
        except StoreError:
            logger.exception("Failed to authenticate user")
            return OperationResult.fail(ErrorKind.INTERNAL)
        if user is None:
            logger.warning("Failed login attempt for %s", email)
            return OperationResult.fail(ErrorKind.UNAUTHENTICATED, "invalid_credentials")

        token = self._authority.issue(IdentityClaim(user_id=user.id, role=user.role.value))
        logger.info("User %s signed in", user.id)
        return OperationResult.ok(token)


__all__ = ["AccountService"]
