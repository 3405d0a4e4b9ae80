"""Tests for the HTTP surface: auth wiring and error mapping."""
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from database import get_db
from main import app
from models.user import UserRole, new_user_doc
from utils.jwt import create_access_token
from utils.security import get_current_user


@pytest.fixture
def client(db):
    admin = {"_id": ObjectId(), "role": "admin", "is_active": True}
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: admin
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def buyer_client(db):
    buyer = {"_id": ObjectId(), "role": "customer", "is_active": True}
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_current_user] = lambda: buyer
    yield TestClient(app)
    app.dependency_overrides.clear()


HOLIDAY = {
    "name": "Holiday",
    "start_date": "2024-12-01T00:00:00",
    "end_date": "2024-12-31T00:00:00",
    "commission_rate": 8,
}


class TestPromotionAPI:
    def test_create_and_list(self, client):
        resp = client.post("/api/promotions/admin", json=HOLIDAY)
        assert resp.status_code == 200
        assert resp.json()["promotion"]["name"] == "Holiday"

        resp = client.get("/api/promotions/admin")
        assert resp.json()["count"] == 1

    def test_overlap_is_409(self, client):
        client.post("/api/promotions/admin", json=HOLIDAY)
        resp = client.post("/api/promotions/admin", json={**HOLIDAY, "name": "Other"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    def test_delete_missing_is_404(self, client):
        resp = client.delete("/api/promotions/admin/Ghost")
        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": "not_found",
            "message": "Promotion 'Ghost' not found",
        }

    def test_rate_validated_by_schema(self, client):
        resp = client.post("/api/promotions/admin", json={**HOLIDAY, "commission_rate": 150})
        assert resp.status_code == 422

    def test_admin_only(self, buyer_client):
        resp = buyer_client.post("/api/promotions/admin", json=HOLIDAY)
        assert resp.status_code == 403


class TestCommissionAPI:
    def test_process_sale_missing_buyer_is_404(self, client):
        resp = client.post(
            "/api/commissions/admin/process-sale",
            json={"order_id": str(ObjectId()), "buyer_id": str(ObjectId()), "amount": 100},
        )
        assert resp.status_code == 404

    def test_invalid_id_is_400(self, client):
        resp = client.patch("/api/commissions/admin/not-an-id/status", json={"status": "completed"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"


class TestWithdrawalAPI:
    def test_window(self, client):
        resp = client.get("/api/withdrawals/window")
        assert resp.status_code == 200
        assert set(resp.json()) == {"available_from", "available_until", "is_active"}


class TestBearerAuth:
    @pytest.fixture
    def anon_client(self, db):
        app.dependency_overrides[get_db] = lambda: db
        yield TestClient(app)
        app.dependency_overrides.clear()

    async def test_token_resolves_user(self, db, anon_client):
        doc = new_user_doc("buyer")
        doc["commission_balance"]["available"] = 42.0
        result = await db.users.insert_one(doc)
        token = create_access_token(result.inserted_id, "customer")

        resp = anon_client.get("/api/wallet/balance", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        assert resp.json()["available"] == 42.0

    async def test_affiliate_cannot_reach_admin_routes(self, db, anon_client):
        doc = new_user_doc("aff", role=UserRole.AFFILIATE.value)
        assert new_user_doc("plain")["role"] == "customer"
        result = await db.users.insert_one(doc)
        token = create_access_token(result.inserted_id, UserRole.AFFILIATE.value)

        resp = anon_client.get("/api/commissions/admin/settings", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 403

    def test_bad_token(self, anon_client):
        resp = anon_client.get("/api/wallet/balance", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestCommissionSettingsAPI:
    def test_default_rate_round_trip(self, client):
        resp = client.put("/api/commissions/admin/settings", json={"rate": 12})
        assert resp.status_code == 200

        resp = client.get("/api/commissions/admin/settings")
        assert resp.json()["default_rate"] == 12

    def test_user_rate_for_unknown_user_is_404(self, client):
        resp = client.put(f"/api/commissions/admin/users/{ObjectId()}/rate", json={"rate": 12})
        assert resp.status_code == 404

    def test_rate_bounds(self, client):
        resp = client.put("/api/commissions/admin/settings", json={"rate": -1})
        assert resp.status_code == 422
