"""Tests for the HTTP routes."""

import pytest
from fastapi.testclient import TestClient

from nitebite.api import create_app

USER = {"X-Principal-Id": "user-1"}


@pytest.fixture
def client(processor):
    with TestClient(create_app(processor)) as client:
        yield client


def order_body(amount, items=None, **overrides):
    order = {
        "customer_name": "Asha Rao",
        "email": "asha@example.com",
        "phone_number": "9876543210",
        "hostel_number": "4",
        "room_number": "B-112",
        "payment_method": "qr",
        "amount": str(amount),
    }
    order.update(overrides)
    return {
        "order": order,
        "items": items if items is not None else [{"type": "product", "product_id": "chips", "quantity": 5}],
    }


class TestAuth:
    @pytest.mark.parametrize(
        ("method", "path"),
        [("post", "/orders"), ("post", "/prices"), ("post", "/coupons/validate"), ("get", "/orders")],
    )
    def test_requires_principal(self, client, method, path):
        body = {"code": "LATE20", **order_body(116)} if method == "post" else None

        response = client.request(method.upper(), path, json=body)

        assert response.status_code == 401

    def test_blank_principal(self, client):
        response = client.get("/orders", headers={"X-Principal-Id": "  "})
        assert response.status_code == 401


class TestPlaceOrder:
    def test_success(self, client):
        response = client.post("/orders", json=order_body(116), headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["state"] == "completed"
        assert data["calculated_total"] == "116.00"
        assert data["order_id"]

    def test_client_prices_are_ignored(self, client):
        items = [{"type": "product", "product_id": "chips", "quantity": 5, "price": "0.01", "name": "free"}]

        response = client.post("/orders", json=order_body(116, items), headers=USER)

        assert response.status_code == 200
        assert response.json()["calculated_total"] == "116.00"

    def test_price_mismatch_is_409(self, client):
        response = client.post("/orders", json=order_body("0.50"), headers=USER)

        assert response.status_code == 409
        data = response.json()
        assert data["error_kind"] == "price_mismatch"
        assert data["calculated_total"] == "116.00"

    def test_validation_is_422_with_field_errors(self, client):
        response = client.post("/orders", json=order_body(116, email="nope"), headers=USER)

        assert response.status_code == 422
        assert response.json()["errors"] == [
            {"field": "email", "message": "Please enter a valid email address"}
        ]

    def test_stock_failure_lists_items(self, client):
        items = [{"type": "product", "product_id": "rare", "quantity": 3}]

        # 180 + 6
        response = client.post("/orders", json=order_body(186, items), headers=USER)

        assert response.status_code == 409
        assert response.json()["failed_items"] == [{
            "product_id": "rare",
            "name": "Limited Edition Pocky",
            "reason": "Insufficient stock - only 1 available",
            "requested": 3,
            "available": 1,
        }]

    def test_bundle_line(self, client):
        items = [{"type": "bundle", "bundle_id": "exam-box", "quantity": 1}]

        response = client.post("/orders", json=order_body(205, items), headers=USER)

        assert response.status_code == 200

    def test_unknown_line_type_rejected(self, client):
        items = [{"type": "gift", "product_id": "chips", "quantity": 1}]

        response = client.post("/orders", json=order_body(36, items), headers=USER)

        assert response.status_code == 422
        assert "detail" in response.json()

    def test_rate_limited_sets_retry_after(self, client):
        for _ in range(5):
            client.post("/orders", json=order_body(1), headers=USER)

        response = client.post("/orders", json=order_body(116), headers=USER)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1800"
        assert response.json()["state"] == "rate_limited"

    def test_request_id_replay(self, client):
        body = {**order_body(116), "request_id": "tab-7f3a"}

        first = client.post("/orders", json=body, headers=USER).json()
        second = client.post("/orders", json=body, headers=USER).json()

        assert second["replayed"] is True
        assert second["order_id"] == first["order_id"]


class TestPreviews:
    @pytest.mark.parametrize("path", ["/prices", "/coupons/validate"])
    def test_non_positive_quantity_is_422(self, client, path):
        body = {"code": "FLAT50", "items": [{"type": "product", "product_id": "chips", "quantity": -3}]}

        response = client.post(path, json=body, headers=USER)

        assert response.status_code == 422

    def test_prices(self, client):
        body = {"items": [{"type": "product", "product_id": "chips", "quantity": 5}], "coupon_code": "LATE20"}

        response = client.post("/prices", json=body, headers=USER)

        assert response.status_code == 200
        data = response.json()
        assert data["subtotal"] == "100.00"
        assert data["coupon_discount"] == "20.00"
        assert data["total"] == "96.00"
        assert data["coupon_code"] == "LATE20"

    def test_coupon_validation(self, client):
        body = {"code": "flat50", "items": [{"type": "product", "product_id": "chips", "quantity": 5}]}

        data = client.post("/coupons/validate", json=body, headers=USER).json()

        assert data == {
            "valid": True,
            "discount_amount": "50.00",
            "message": "Coupon applied successfully",
            "code": "FLAT50",
        }

    def test_coupon_below_minimum(self, client):
        body = {"code": "FLAT50", "items": [{"type": "product", "product_id": "chips", "quantity": 1}]}

        data = client.post("/coupons/validate", json=body, headers=USER).json()

        assert data["valid"] is False
        assert data["code"] is None


class TestListOrders:
    def test_only_own_orders(self, client):
        client.post("/orders", json=order_body(116), headers=USER)
        client.post("/orders", json=order_body(116), headers={"X-Principal-Id": "user-2"})

        response = client.get("/orders", headers=USER)

        assert response.status_code == 200
        orders = response.json()
        assert len(orders) == 1
        assert orders[0]["amount"] == "116.00"
        assert orders[0]["payment_status"] == "pending"
        assert orders[0]["items"][0]["name"] == "Lays Classic"
