from unittest.mock import AsyncMock, patch

from pymongo.errors import ConnectionFailure

from config.database import Database
from tests.factories import (
    MONDAY, auth_headers, create_customer, create_salon, create_service, create_staff
)

API = "/api/v1"

SALON = {
    "name": "Hair Studio",
    "address": {"street": "1-2-3 Shibuya", "city": "Tokyo"},
    "phone": "0312345678",
    "opening_hours": [{"day_of_week": 0, "open_time": "10:00", "close_time": "20:00"}],
}


class TestSalonRoutes:
    """Salon endpoints, auth and error envelopes"""

    def test_create_and_get(self, client):
        response = client.post(f"{API}/salons/", json=SALON, headers=auth_headers("admin"))

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "active"
        assert response.headers["Location"] == f"{API}/salons/{body['data']['id']}"

        fetched = client.get(f"{API}/salons/{body['data']['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["name"] == "Hair Studio"

    def test_list(self, client):
        client.post(f"{API}/salons/", json=SALON, headers=auth_headers("admin"))
        response = client.get(f"{API}/salons/", params={"city": "tokyo"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_requires_token(self, client):
        response = client.post(f"{API}/salons/", json=SALON)
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    def test_rejects_invalid_token(self, client):
        response = client.post(f"{API}/salons/", json=SALON, headers={"Authorization": "Bearer nonsense"})
        assert response.status_code == 401

    def test_customer_cannot_create(self, client):
        response = client.post(f"{API}/salons/", json=SALON, headers=auth_headers("customer", customer_id="cus_1"))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"

    def test_validation_error_envelope(self, client):
        response = client.post(f"{API}/salons/", json={"name": "No address"}, headers=auth_headers("admin"))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert any("address" in error["loc"] for error in detail["details"]["errors"])

    def test_unknown_salon(self, client):
        response = client.get(f"{API}/salons/sln_missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    def test_bad_pagination(self, client):
        response = client.get(f"{API}/salons/", params={"limit": 1000})
        assert response.status_code == 400


class TestAuthRoutes:
    """Registration and login over HTTP"""

    USER = {"email": "hanako@example.com", "password": "secret123", "name": "Hanako"}

    def test_register_login_me(self, client):
        registered = client.post(f"{API}/auth/register", json=self.USER)
        assert registered.status_code == 201
        assert "session" in registered.cookies

        login = client.post(f"{API}/auth/login", json={"email": self.USER["email"], "password": "secret123"})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "hanako@example.com"

    def test_wrong_password(self, client):
        client.post(f"{API}/auth/register", json=self.USER)
        response = client.post(f"{API}/auth/login", json={"email": self.USER["email"], "password": "wrong1234"})
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_CREDENTIALS"

    def test_weak_password(self, client):
        response = client.post(f"{API}/auth/register", json={**self.USER, "password": "short"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "WEAK_PASSWORD"

    def test_password_reset_request_does_not_leak_accounts(self, client):
        """Test known and unknown emails get the same answer, even with a session cookie set"""
        client.post(f"{API}/auth/register", json=self.USER)

        known = client.post(f"{API}/auth/password-reset/request", json={"email": self.USER["email"]})
        unknown = client.post(f"{API}/auth/password-reset/request", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 202
        assert known.json() == unknown.json()

    def test_change_password(self, client):
        token = client.post(f"{API}/auth/register", json=self.USER).json()["access_token"]

        response = client.post(
            f"{API}/auth/change-password",
            json={"current_password": "secret123", "new_password": "fresh4567"},
            headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200
        login = client.post(f"{API}/auth/login", json={"email": self.USER["email"], "password": "fresh4567"})
        assert login.status_code == 200


class TestReservationRoutes:
    """Reservations over HTTP"""

    async def records(self, db):
        salon = await create_salon(db)
        service = await create_service(db, salon.data.id)
        staff = await create_staff(db, salon.data.id)
        customer = await create_customer(db)
        return {
            "salon_id": salon.data.id,
            "staff_id": staff.data.id,
            "service_id": service.data.id,
        }, customer.data.id

    async def test_create_and_overlap(self, client, db):
        payload, customer_id = await self.records(db)
        headers = auth_headers("customer", customer_id=customer_id)
        payload["start_time"] = f"{MONDAY.isoformat()}T10:00:00"

        created = client.post(f"{API}/reservations/", json=payload, headers=headers)
        assert created.status_code == 201
        body = created.json()
        assert body["type"] == "pending"
        assert body["data"]["end_time"].startswith(f"{MONDAY.isoformat()}T11:00:00")

        payload["start_time"] = f"{MONDAY.isoformat()}T10:30:00"
        overlapping = client.post(f"{API}/reservations/", json=payload, headers=headers)
        assert overlapping.status_code == 409
        assert overlapping.json()["detail"]["code"] == "SLOT_NOT_AVAILABLE"

    async def test_customer_sees_only_own(self, client, db):
        payload, customer_id = await self.records(db)
        payload["start_time"] = f"{MONDAY.isoformat()}T10:00:00"
        created = client.post(f"{API}/reservations/", json=payload,
                              headers=auth_headers("customer", customer_id=customer_id)).json()

        other = client.get(f"{API}/reservations/{created['data']['id']}",
                           headers=auth_headers("customer", customer_id="cus_other"))
        assert other.status_code == 403

    async def test_staff_confirms(self, client, db):
        payload, customer_id = await self.records(db)
        payload["start_time"] = f"{MONDAY.isoformat()}T10:00:00"
        created = client.post(f"{API}/reservations/", json=payload,
                              headers=auth_headers("customer", customer_id=customer_id)).json()

        customer_try = client.post(f"{API}/reservations/{created['data']['id']}/confirm",
                                   headers=auth_headers("customer", customer_id=customer_id))
        confirmed = client.post(f"{API}/reservations/{created['data']['id']}/confirm",
                                headers=auth_headers("staff", salon_id=payload["salon_id"]))

        assert customer_try.status_code == 403
        assert confirmed.status_code == 200
        assert confirmed.json()["type"] == "confirmed"


class TestHealthRoutes:
    """Probes, metrics and response headers"""

    def test_health(self, client):
        response = client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        with patch.object(Database, "ping", AsyncMock(return_value=True)):
            response = client.get(f"{API}/health/ready")
        assert response.json() == {"status": "ready", "database": "up"}

    def test_not_ready(self, client):
        with patch.object(Database, "ping", AsyncMock(side_effect=ConnectionFailure("down"))):
            response = client.get(f"{API}/health/ready")
        assert response.status_code == 503
        assert response.json()["database"] == "down"

    def test_metrics_count_requests(self, client):
        client.get(f"{API}/health")
        client.get(f"{API}/salons/sln_missing")

        snapshot = client.get(f"{API}/health/metrics").json()

        assert snapshot["total_requests"] == 2
        assert snapshot["by_status"] == {"2xx": 1, "4xx": 1}

    def test_request_id(self, client):
        generated = client.get(f"{API}/health")
        echoed = client.get(f"{API}/health", headers={"X-Request-ID": "abc-123"})
        rejected = client.get(f"{API}/health", headers={"X-Request-ID": "not valid!"})

        assert len(generated.headers["X-Request-ID"]) == 32
        assert echoed.headers["X-Request-ID"] == "abc-123"
        assert rejected.headers["X-Request-ID"] != "not valid!"

    def test_security_headers(self, client):
        response = client.get(f"{API}/health")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "Strict-Transport-Security" not in response.headers
