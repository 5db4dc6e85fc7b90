import pytest

from apothecary.domain.models import Order


def test_orders_require_a_token(client):
    assert client.get("/orders/").status_code == 401
    resp = client.get("/orders/", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


def test_create_order_and_send_confirmation(client, products, headers, build_order, sender):
    payload = build_order([{"product_id": products["ginger-root"].id, "quantity": 2, "price": 1}])
    resp = client.post("/orders/", json=payload, headers=headers())
    assert resp.status_code == 201
    body = resp.json()
    assert body["subtotal"] == pytest.approx(60.0)
    assert body["shipping"] == 0
    assert body["status"] == "pending"
    assert body["items"][0]["type"] == "product"
    assert sender.sent == [("maya@wattle.com.au", body["order_number"])]


def test_stock_error_maps_to_conflict(client, products, headers, build_order, db):
    payload = build_order([{"product_id": products["vitex-berry"].id, "quantity": 4, "price": 40}])
    resp = client.post("/orders/", json=payload, headers=headers())
    assert resp.status_code == 409
    assert resp.json() == {"detail": "Insufficient stock for Vitex Berry. Available: 3, Requested: 4"}
    assert db.query(Order).count() == 0


def test_foreign_compound_maps_to_forbidden(client, compound, headers, build_order):
    payload = build_order([{"type": "compound", "compound_id": compound.id, "quantity": 1, "price": 55}])
    resp = client.post("/orders/", json=payload, headers=headers(sub="user-2"))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Compound not available for this account"


def test_empty_cart_is_rejected_by_validation(client, headers, build_order):
    resp = client.post("/orders/", json=build_order([]), headers=headers())
    assert resp.status_code == 422


def test_order_reads_are_scoped_to_owner(client, products, headers, build_order):
    payload = build_order([{"product_id": products["lemon-balm"].id, "quantity": 1, "price": 20}])
    order_id = client.post("/orders/", json=payload, headers=headers()).json()["id"]

    assert client.get(f"/orders/{order_id}", headers=headers()).status_code == 200
    assert client.get(f"/orders/{order_id}", headers=headers(sub="user-2")).status_code == 404
    assert client.get(f"/orders/{order_id}", headers=headers(sub="admin-1", role="admin")).status_code == 200
    listed = client.get("/orders/", headers=headers()).json()
    assert [o["id"] for o in listed] == [order_id]


def test_only_admins_change_status(client, products, headers, build_order):
    payload = build_order([{"product_id": products["lemon-balm"].id, "quantity": 1, "price": 20}])
    order_id = client.post("/orders/", json=payload, headers=headers()).json()["id"]

    resp = client.patch(f"/orders/{order_id}/status", json={"status": "processing"}, headers=headers())
    assert resp.status_code == 403

    admin = headers(sub="admin-1", role="admin")
    resp = client.patch(f"/orders/{order_id}/status", json={"status": "processing"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["status"] == "processing"

    resp = client.patch(f"/orders/{order_id}/status", json={"status": "pending"}, headers=admin)
    assert resp.status_code == 409
