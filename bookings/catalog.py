"""Service catalog. Mutations are reserved for administrators."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .database import Database
from .errors import ErrorKind, OperationResult, StoreError
from .models import Role, Service
from .security import allow
from .validation import parse_duration, parse_identifier, parse_price

logger = logging.getLogger("bookings.catalog")


class ServiceCatalog:
    def __init__(self, database: Database) -> None:
        self._database = database

    def create_service(
        self,
        claim: object,
        *,
        name: object,
        price: object,
        duration: object,
        description: Optional[object] = None,
    ) -> OperationResult[Service]:
        """Add a service to the catalog.

        The caller's role is checked before the fields, so a non-admin never
        learns which fields would have been rejected.
        """

        if not allow(claim, Role.ADMIN):
            logger.warning("Denied service creation for %s", getattr(claim, "user_id", None))
            return OperationResult.fail(ErrorKind.FORBIDDEN)

        errors: Dict[str, str] = {}
        clean_name = name.strip() if isinstance(name, str) else ""
        if not clean_name:
            errors["name"] = "required"

        clean_description: Optional[str] = None
        if description is not None:
            if not isinstance(description, str):
                errors["description"] = "invalid"
            else:
                clean_description = description.strip() or None

        clean_price = parse_price(price)
        if clean_price is None:
            errors["price"] = "must_be_non_negative_number"

        clean_duration = parse_duration(duration)
        if clean_duration is None:
            errors["duration"] = "must_be_positive_integer"

        if errors:
            return OperationResult.fail(ErrorKind.INVALID_INPUT, fields=errors)

        try:
            service = self._database.create_service(
                name=clean_name,
                description=clean_description,
                price=clean_price,  # type: ignore[arg-type]
                duration=clean_duration,  # type: ignore[arg-type]
            )
        except StoreError:
            logger.exception("Failed to store service %r", clean_name)
            return OperationResult.fail(ErrorKind.INTERNAL)

        logger.info("Service %s (%s) created", service.id, service.name)
        return OperationResult.ok(service)

    def list_services(self) -> OperationResult[List[Service]]:
        try:
            return OperationResult.ok(self._database.list_services())
        except StoreError:
            logger.exception("Failed to list services")
            return OperationResult.fail(ErrorKind.INTERNAL)

    def delete_service(self, claim: object, service_id: str) -> OperationResult[None]:
        if not allow(claim, Role.ADMIN):
            logger.warning("Denied service deletion for %s", getattr(claim, "user_id", None))
            return OperationResult.fail(ErrorKind.FORBIDDEN)

        target = parse_identifier(service_id)
        if target is None:
            return OperationResult.fail(
                ErrorKind.INVALID_INPUT, "invalid_identifier", {"service_id": "invalid_identifier"}
            )
        try:
            deleted = self._database.delete_service(target)
        except StoreError:
            logger.exception("Failed to delete service %s", target)
            return OperationResult.fail(ErrorKind.INTERNAL)
        if not deleted:
            return OperationResult.fail(ErrorKind.NOT_FOUND, "service_not_found")

        logger.info("Service %s deleted", target)
        return OperationResult.ok(None)


__all__ = ["ServiceCatalog"]
