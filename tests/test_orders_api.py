from decimal import Decimal

from sqlalchemy.exc import OperationalError

from storefront.database import get_db
from storefront.models import Order


def order_payload(*lines, payment_method="credit_card"):
    return {
        "items": [{"product_id": product_id, "quantity": qty} for product_id, qty in lines],
        "shipping_address": "1 Main Street",
        "payment_method": payment_method,
    }


def test_place_order_returns_hydrated_order(client, user, make_product, auth_headers, stock_of):
    product = make_product(stock=5, price="10.00")

    response = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 3)),
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Order placed successfully"
    order = body["order"]
    assert order["status"] == "pending"
    assert Decimal(order["total_amount"]) == Decimal("30.00")
    assert order["user"]["id"] == user.id
    assert order["items"][0]["product"]["name"] == product.name
    assert Decimal(order["items"][0]["subtotal"]) == Decimal("30.00")
    assert stock_of(product.id) == 2


def test_place_order_insufficient_stock(client, user, make_product, auth_headers, stock_of):
    product = make_product(stock=2)

    response = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 3)),
        headers=auth_headers(user),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "Insufficient stock" in body["message"]
    assert stock_of(product.id) == 2


def test_place_order_requires_token(client, make_product):
    product = make_product()

    response = client.post("/api/user/orders", json=order_payload((product.id, 1)))

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_place_order_rejects_malformed_body(client, user, make_product, auth_headers):
    product = make_product()

    empty = client.post("/api/user/orders", json=order_payload(), headers=auth_headers(user))
    zero = client.post("/api/user/orders", json=order_payload((product.id, 0)), headers=auth_headers(user))
    method = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 1), payment_method="barter"),
        headers=auth_headers(user),
    )

    for response in (empty, zero, method):
        assert response.status_code == 400
        assert response.json()["success"] is False


def test_cancel_order_restores_stock(client, user, make_product, auth_headers, stock_of):
    product = make_product(stock=5)
    placed = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 4)),
        headers=auth_headers(user),
    ).json()["order"]

    response = client.put(f"/api/user/orders/{placed['id']}/cancel", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["message"] == "Order cancelled successfully"
    assert response.json()["order"]["status"] == "cancelled"
    assert stock_of(product.id) == 5

    again = client.put(f"/api/user/orders/{placed['id']}/cancel", headers=auth_headers(user))
    assert again.status_code == 400
    assert stock_of(product.id) == 5


def test_cancel_delivered_order_is_rejected(client, user, make_product, make_order, auth_headers, stock_of):
    product = make_product(stock=1)
    order = make_order(user, [(product, 2, "10.00")], status="delivered")

    response = client.put(f"/api/user/orders/{order.id}/cancel", headers=auth_headers(user))

    assert response.status_code == 400
    assert "Cannot cancel" in response.json()["message"]
    assert stock_of(product.id) == 1


def test_other_users_order_is_not_found(client, make_user, make_product, make_order, auth_headers):
    owner = make_user()
    stranger = make_user()
    order = make_order(owner, [(make_product(), 1, "10.00")])

    read = client.get(f"/api/user/orders/{order.id}", headers=auth_headers(stranger))
    cancel = client.put(f"/api/user/orders/{order.id}/cancel", headers=auth_headers(stranger))

    assert read.status_code == 404
    assert cancel.status_code == 404


def test_list_own_orders_paginates(client, make_user, make_product, make_order, auth_headers):
    owner = make_user()
    other = make_user()
    product = make_product()
    for _ in range(3):
        make_order(owner, [(product, 1, "10.00")])
    make_order(other, [(product, 1, "10.00")])

    response = client.get("/api/user/orders?page=1&limit=2", headers=auth_headers(owner))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 3
    assert body["count"] == 2
    assert body["total_pages"] == 2
    assert body["current_page"] == 1
    assert all(order["user_id"] == owner.id for order in body["orders"])


def test_deactivated_account_cannot_order(client, make_user, make_product, auth_headers):
    inactive = make_user(is_active=False)
    product = make_product()

    response = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 1)),
        headers=auth_headers(inactive),
    )

    assert response.status_code == 401


def test_store_failure_returns_generic_500(app, client, session_factory, user, make_product, auth_headers, stock_of):
    product = make_product(stock=5)

    def broken_commit_db():
        session = session_factory()

        def commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        session.commit = commit
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = broken_commit_db

    response = client.post(
        "/api/user/orders",
        json=order_payload((product.id, 2)),
        headers=auth_headers(user),
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Server error, please try again later"}
    assert stock_of(product.id) == 5

    session = session_factory()
    try:
        assert session.query(Order).count() == 0
    finally:
        session.close()
