"""End-to-end tests for the booking service HTTP API."""

from __future__ import annotations

import inspect
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bookings.api import create_app
from bookings.config import Settings
from bookings.database import Database
from bookings.models import Role
from bookings.security import TokenAuthority

NOW = datetime(2025, 2, 1, 12, 30, tzinfo=timezone.utc)


class BookingAPITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "bookings.sqlite3"
        self.database = Database(db_path)
        self.database.initialize()
        self.settings = Settings(database_path=db_path, token_secret="tests-secret-key")
        self.authority = TokenAuthority("tests-secret-key")
        self.admin = self.database.create_user("Admin User", "admin@example.com", "admin-pw", role=Role.ADMIN)
        app = create_app(
            database=self.database,
            settings=self.settings,
            authority=self.authority,
            clock=lambda: NOW,
        )
        self.client = TestClient(app)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _register_and_login(self, name: str, email: str, password: str = "secret-pw") -> dict:
        response = self.client.post("/users", json={"name": name, "email": email, "password": password})
        self.assertEqual(response.status_code, 201, response.text)
        return self._login(email, password)

    def _login(self, email: str, password: str) -> dict:
        response = self.client.post("/sessions", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 200, response.text)
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.json(), {"status": "ok"})

    def test_registration_returns_user_id_and_rejects_duplicates(self) -> None:
        payload = {"name": "Ana Souza", "email": "ana@example.com", "password": "secret-pw"}
        created = self.client.post("/users", json=payload)
        self.assertEqual(created.status_code, 201)
        self.assertIn("userId", created.json())

        duplicate = self.client.post("/users", json=payload, headers={"Accept-Language": "pt-BR"})
        self.assertEqual(duplicate.status_code, 400)
        error = duplicate.json()["error"]
        self.assertEqual(error["kind"], "duplicate_unique")
        self.assertEqual(error["message"], "Este e-mail já está em uso.")

    def test_registration_validation_errors_are_structured(self) -> None:
        response = self.client.post("/users", json={"name": "Al", "email": "nope", "password": "123"})
        self.assertEqual(response.status_code, 400)
        error = response.json()["error"]
        self.assertEqual(error["code"], "invalid_input")
        self.assertEqual(set(error["fields"]), {"name", "email", "password"})

    def test_malformed_body_is_a_400(self) -> None:
        response = self.client.post("/sessions", json={"email": "ana@example.com"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("password", response.json()["error"]["fields"])

    def test_bad_login_is_unauthenticated(self) -> None:
        response = self.client.post("/sessions", json={"email": "admin@example.com", "password": "wrong"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "invalid_credentials")

    def test_booking_requires_authentication(self) -> None:
        missing = self.client.post("/appointments", json={"date": "2025-03-01T10:00:00"})
        self.assertEqual(missing.status_code, 401)
        self.assertEqual(missing.headers["www-authenticate"], "Bearer")

        forged = self.client.post(
            "/appointments",
            json={"date": "2025-03-01T10:00:00"},
            headers={"Authorization": "Bearer not-a-token"},
        )
        self.assertEqual(forged.status_code, 401)

    def test_booking_lifecycle(self) -> None:
        headers = self._register_and_login("Ana Souza", "ana@example.com")

        me = self.client.get("/users/me", headers=headers)
        self.assertEqual(me.json()["role"], "CLIENT")

        created = self.client.post("/appointments", json={"date": "2025-03-01T10:15:00"}, headers=headers)
        self.assertEqual(created.status_code, 201, created.text)
        appointment = created.json()
        self.assertEqual(appointment["user_id"], me.json()["id"])
        self.assertEqual(
            datetime.fromisoformat(appointment["date"].replace("Z", "+00:00")),
            datetime(2025, 3, 1, 10, tzinfo=timezone.utc),
        )

        conflict = self.client.post("/appointments", json={"date": "2025-03-01T10:47:00"}, headers=headers)
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["error"]["kind"], "slot_conflict")

        past = self.client.post("/appointments", json={"date": "2025-01-01T10:00:00"}, headers=headers)
        self.assertEqual(past.status_code, 400)
        self.assertEqual(past.json()["error"]["kind"], "past_date")

        invalid = self.client.post("/appointments", json={"date": "someday"}, headers=headers)
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.json()["error"]["code"], "invalid_date")

        listing = self.client.get("/appointments", headers=headers)
        self.assertEqual([item["id"] for item in listing.json()], [appointment["id"]])

        deleted = self.client.delete(f"/appointments/{appointment['id']}", headers=headers)
        self.assertEqual(deleted.status_code, 204)
        self.assertEqual(deleted.content, b"")

        again = self.client.delete(f"/appointments/{appointment['id']}", headers=headers)
        self.assertEqual(again.status_code, 404)

        malformed = self.client.delete("/appointments/123", headers=headers)
        self.assertEqual(malformed.status_code, 400)

    def test_calendar_joins_owner_details(self) -> None:
        ana = self._register_and_login("Ana Souza", "ana@example.com")
        bruno = self._register_and_login("Bruno Lima", "bruno@example.com")
        self.client.post("/appointments", json={"date": "2025-03-01T15:00:00"}, headers=bruno)
        self.client.post("/appointments", json={"date": "2025-03-01T09:00:00"}, headers=ana)
        self.client.post("/appointments", json={"date": "2025-03-02T09:00:00"}, headers=ana)

        response = self.client.get("/calendar/2025-03-01", headers=ana)
        self.assertEqual(response.status_code, 200)
        entries = response.json()
        self.assertEqual([entry["user"]["email"] for entry in entries], ["ana@example.com", "bruno@example.com"])
        self.assertEqual(entries[1]["user"]["name"], "Bruno Lima")

        invalid = self.client.get("/calendar/not-a-day", headers=ana)
        self.assertEqual(invalid.status_code, 400)

    def test_service_catalog_is_admin_only(self) -> None:
        client_headers = self._register_and_login("Ana Souza", "ana@example.com")
        admin_headers = self._login("admin@example.com", "admin-pw")
        payload = {"name": "Corte", "price": "49.90", "duration": 60}

        forbidden = self.client.post("/services", json=payload, headers=client_headers)
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(self.client.get("/services").json(), [])

        unauthenticated = self.client.post("/services", json=payload)
        self.assertEqual(unauthenticated.status_code, 401)

        created = self.client.post("/services", json=payload, headers=admin_headers)
        self.assertEqual(created.status_code, 201, created.text)
        service = created.json()
        self.assertIsNone(service["description"])

        listed = self.client.get("/services").json()
        self.assertEqual([item["id"] for item in listed], [service["id"]])
        self.assertEqual(listed[0]["duration"], 60)

        invalid = self.client.post(
            "/services",
            json={"name": "Corte", "price": -1, "duration": 60},
            headers=admin_headers,
        )
        self.assertEqual(invalid.status_code, 400)
        self.assertIn("price", invalid.json()["error"]["fields"])

        denied_delete = self.client.delete(f"/services/{service['id']}", headers=client_headers)
        self.assertEqual(denied_delete.status_code, 403)
        removed = self.client.delete(f"/services/{service['id']}", headers=admin_headers)
        self.assertEqual(removed.status_code, 204)
        self.assertEqual(self.client.get("/services").json(), [])

    def test_admin_can_list_any_users_appointments(self) -> None:
        ana = self._register_and_login("Ana Souza", "ana@example.com")
        ana_id = self.client.get("/users/me", headers=ana).json()["id"]
        self.client.post("/appointments", json={"date": "2025-03-01T11:00:00"}, headers=ana)
        admin_headers = self._login("admin@example.com", "admin-pw")

        response = self.client.get(f"/users/{ana_id}/appointments", headers=admin_headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)

        self.assertEqual(self.client.get(f"/users/{ana_id}/appointments", headers=ana).status_code, 403)
        malformed = self.client.get("/users/abc/appointments", headers=admin_headers)
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()["error"]["code"], "invalid_identifier")

    def test_edge_inputs_are_client_errors(self) -> None:
        ana = self._register_and_login("Ana Souza", "ana@example.com")
        admin_headers = self._login("admin@example.com", "admin-pw")

        oversized = self.client.post(
            "/services",
            json={"name": "Corte", "price": 10, "duration": 10**30},
            headers=admin_headers,
        )
        self.assertEqual(oversized.status_code, 400, oversized.text)
        self.assertIn("duration", oversized.json()["error"]["fields"])

        shifted = self.client.post("/appointments", json={"date": "9999-12-31T23:30:00-01:00"}, headers=ana)
        self.assertEqual(shifted.status_code, 400)
        self.assertEqual(shifted.json()["error"]["code"], "invalid_date")

        last_day = self.client.get("/calendar/9999-12-31", headers=ana)
        self.assertEqual(last_day.status_code, 200)
        self.assertEqual(last_day.json(), [])

    def test_store_backed_routes_run_in_the_threadpool(self) -> None:
        routes = [
            route
            for route in self.client.app.routes
            if isinstance(route, APIRoute) and route.path != "/health"
        ]
        self.assertIn("/appointments", {route.path for route in routes})
        for route in routes:
            self.assertFalse(inspect.iscoroutinefunction(route.endpoint), f"{route.methods} {route.path}")

    def test_unexpected_errors_do_not_leak_details(self) -> None:
        app = create_app(
            database=self.database,
            settings=self.settings,
            authority=self.authority,
            clock=lambda: NOW,
        )

        def explode():
            raise RuntimeError("secret stack detail")

        self.database.list_services = explode  # type: ignore[method-assign]
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/services")

        self.assertEqual(response.status_code, 500)
        self.assertNotIn("secret stack detail", response.text)
        self.assertEqual(response.json()["error"]["kind"], "internal")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
