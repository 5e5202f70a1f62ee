"""Authentication and authorization helpers for the booking API."""
from __future__ import annotations

import base64
import hashlib
import json
import time
from typing import Callable, Optional

from cryptography.fernet import Fernet, InvalidToken
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import DomainError, ErrorKind
from .models import IdentityClaim, Role


class AuthenticationFailed(Exception):
    """Raised by request dependencies when the caller cannot be identified."""

    def __init__(self, code: str = "unauthenticated") -> None:
        super().__init__(code)
        self.error = DomainError(kind=ErrorKind.UNAUTHENTICATED, code=code)


class AccessDenied(Exception):
    """Raised by request dependencies when the authorization gate says no."""

    def __init__(self) -> None:
        super().__init__("forbidden")
        self.error = DomainError(kind=ErrorKind.FORBIDDEN, code="forbidden")


def allow(claim: object, required_role: Role | str) -> bool:
    """Return ``True`` only if ``claim`` carries exactly ``required_role``.

    Anything that is not a well-formed claim is denied.
    """

    if not isinstance(claim, IdentityClaim):
        return False
    if not isinstance(claim.user_id, str) or not claim.user_id:
        return False
    if not isinstance(claim.role, str):
        return False
    expected = required_role.value if isinstance(required_role, Role) else required_role
    return claim.role == expected


class TokenAuthority:
    """Issue and verify Fernet bearer tokens that carry an identity claim."""

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 3600,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._cipher = Fernet(base64.urlsafe_b64encode(digest))
        self._ttl = ttl_seconds
        self._clock = clock or time.time

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def issue(self, claim: IdentityClaim) -> str:
        payload = json.dumps({"sub": claim.user_id, "role": claim.role}).encode("utf-8")
        return self._cipher.encrypt_at_time(payload, int(self._clock())).decode("ascii")

    def verify(self, token: str) -> Optional[IdentityClaim]:
        """Return the claim inside ``token``, or ``None`` if it is invalid or expired."""

        try:
            plaintext = self._cipher.decrypt_at_time(
                token.encode("ascii"),
                ttl=self._ttl,
                current_time=int(self._clock()),
            )
            data = json.loads(plaintext.decode("utf-8"))
        except (InvalidToken, UnicodeError, ValueError):
            return None

        if not isinstance(data, dict):
            return None
        user_id = data.get("sub")
        role = data.get("role")
        if not isinstance(user_id, str) or not isinstance(role, str):
            return None
        return IdentityClaim(user_id=user_id, role=role)


class BearerAuth:
    """FastAPI dependency that turns a bearer token into an :class:`IdentityClaim`."""

    def __init__(self, authority: TokenAuthority) -> None:
        self._authority = authority
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> IdentityClaim:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthenticationFailed()

        claim = self._authority.verify(credentials.credentials)
        if claim is None:
            raise AuthenticationFailed()
        return claim


__all__ = [
    "AccessDenied",
    "AuthenticationFailed",
    "BearerAuth",
    "TokenAuthority",
    "allow",
]
