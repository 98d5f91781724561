"""Integration tests for shop dashboard endpoints."""

from fastapi.testclient import TestClient

from src.core.document_store import CUSTOMERS, EXPENSES, ORDERS, PAYMENTS
from tests.factories import order_row, payment_row


class TestDashboardStats:
    """Tests for GET /api/v1/shops/{shop_id}/stats."""

    def test_returns_totals(self, client: TestClient, store) -> None:
        store.seed(CUSTOMERS, {"id": "c1", "shop_id": "shop-1"})
        store.seed(ORDERS, order_row(status="PENDING"), order_row(status="COMPLETED"))
        store.seed(
            PAYMENTS,
            payment_row(amount="120", status=None),
            payment_row(amount="40", status="PENDING"),
        )
        store.seed(EXPENSES, {"id": "e1", "shop_id": "shop-1", "amount": "15.25"})

        response = client.get("/api/v1/shops/shop-1/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_customers"] == 1
        assert data["total_orders"] == 2
        assert data["pending_orders"] == 1
        assert data["completed_orders"] == 1
        assert data["total_revenue"] == "120.00"
        assert data["pending_payments"] == "40.00"
        assert data["total_expenses"] == "15.25"
        assert data["is_stale"] is False

    def test_cached_until_refresh(self, client: TestClient, store) -> None:
        store.seed(PAYMENTS, payment_row(amount="10"))
        client.get("/api/v1/shops/shop-1/stats")
        store.seed(PAYMENTS, payment_row(amount="5"))

        cached = client.get("/api/v1/shops/shop-1/stats").json()
        refreshed = client.get("/api/v1/shops/shop-1/stats", params={"refresh": "true"}).json()

        assert cached["total_revenue"] == "10.00"
        assert refreshed["total_revenue"] == "15.00"

    def test_serves_stale_copy_when_offline(self, client: TestClient, store) -> None:
        store.seed(PAYMENTS, payment_row(amount="10"))
        client.get("/api/v1/shops/shop-1/stats")
        store.offline = True

        response = client.get("/api/v1/shops/shop-1/stats", params={"refresh": "true"})

        assert response.status_code == 200
        assert response.json()["is_stale"] is True
        assert response.json()["total_revenue"] == "10.00"

    def test_offline_without_cache_returns_503(self, client: TestClient, store) -> None:
        store.offline = True

        response = client.get("/api/v1/shops/shop-1/stats")

        assert response.status_code == 503


class TestShopPayments:
    """Tests for GET /api/v1/shops/{shop_id}/payments."""

    def test_newest_first(self, client: TestClient, store) -> None:
        store.seed(
            PAYMENTS,
            payment_row(amount="1", created_at="2024-01-01T00:00:00Z"),
            payment_row(amount="2", created_at="2024-03-01T00:00:00Z"),
            payment_row(amount="3", shop_id="shop-2"),
        )

        data = client.get("/api/v1/shops/shop-1/payments").json()

        assert [p["amount"] for p in data] == ["2.00", "1.00"]
